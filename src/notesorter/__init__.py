"""notesorter: automatic filing of free-form notes into a topic hierarchy."""

__version__ = "0.1.0"
