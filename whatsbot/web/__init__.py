"""
Web API package for whatsbot.
"""

from whatsbot.web.api import WhatsBotAPI
from whatsbot.web.app import create_app

__all__ = ['WhatsBotAPI', 'create_app']
