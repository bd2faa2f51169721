"""Image annotation tool: images, labels and confidence-scored annotations."""

__version__ = "2.0.0"
