__version__ = "0.1.0"
__version_vector__ = (0, 1, 0)
