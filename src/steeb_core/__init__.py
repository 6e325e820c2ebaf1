"""steeb-core: hierarchical task/QA tracker and adaptive daily push scheduler."""

__version__ = "0.1.0"
