import logging

__name__ = "cryptdrive"
__version__ = "0.1.0"
version = tuple(__version__.split('.'))

logging.getLogger(__name__).addHandler(logging.NullHandler())
