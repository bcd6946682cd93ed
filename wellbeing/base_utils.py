# wellbeing/base_utils.py


import logging
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger("wellbeing_hub")


class BaseUtils():

    # -----------------------
    # General Utils
    # -----------------------

    def color_print(self, text, color=None, end_value=None):
        COLOR_CODES = {
            'black': '30', 'red': '31', 'green': '32', 'yellow': '33', 'blue': '34', 'magenta': '35',
            'cyan': '36', 'white': '37', 'bright_black': '90', 'bright_red': '91', 'bright_green': '92',
            'bright_yellow': '93', 'bright_blue': '94', 'bright_magenta': '95', 'bright_cyan': '96', 'bright_white': '97'
        }
        if color and color.lower() in COLOR_CODES:
            color_code = COLOR_CODES[color.lower()]
            start = f"\033[{color_code}m"
            end = "\033[0m"
            text = f"{start}{text}{end}"
        logger.info(str(text))
        return False

    def format_timestamp(self, timestamp: Optional[datetime]) -> str:
        """
        Human-readable local time for a view row; 'N/A' while the store has
        not assigned a timestamp yet.
        """
        if timestamp is None:
            return "N/A"
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")
