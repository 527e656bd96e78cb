from bookstore.version import VERSION

__version__ = VERSION
