"""
mailsplit - A/B/n experimentation engine for email campaigns.
"""
__version__ = "1.0.0"
