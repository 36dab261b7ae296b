"""
streamgrab: download HLS, DASH and direct media streams with captured
browser session credentials.
"""

__version__ = "0.4.0"
