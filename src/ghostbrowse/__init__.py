"""ghostbrowse - multi-source research pipeline.

Fans a topic out to several rate-sensitive sources, reads the best pages,
and reconciles everything into one confidence-scored session.
"""

__version__ = "0.4.0"
