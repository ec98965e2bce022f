"""Controllers package"""
from .worksheet_controller import worksheet_bp
from .thumbnail_controller import thumbnail_bp

__all__ = [
    'worksheet_bp',
    'thumbnail_bp',
]
