"""NLU studio: training server, content renderers and builder widgets."""

__version__ = "1.0.0"
