# Current version of the LCA pipeline
__version__ = '0.1.0'

def get_version():
    """Returns a string with the current version of the pipeline (e.g., "0.1.0")
    """
    return __version__
