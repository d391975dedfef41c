"""
Dropship Lister Package
"""
from .client import eBayClient
from .auth import get_valid_token
from .models import ListingResult, ProductRecord
from .config import Config, get_config
from .pipeline import ListingPipeline, build_pipeline

__version__ = '0.1.0'

__all__ = [
    'eBayClient', 'get_valid_token', 'ListingResult', 'ProductRecord',
    'Config', 'get_config', 'ListingPipeline', 'build_pipeline',
]
