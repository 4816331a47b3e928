# partsync/__init__.py
# Import submodules directly (partsync.engine, partsync.normalize, ...).
__version__ = "0.3.0"
