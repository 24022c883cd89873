"""File system format, buffer cache, log, inodes, pipes, process table and user tools of a small teaching kernel."""

__version__ = "0.1.0"