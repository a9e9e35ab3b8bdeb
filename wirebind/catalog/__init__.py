"""Binding catalogs: a small language that loads binding tables."""

from .model import ServiceModel as ServiceModel
from .model import build_model as build_model
from .parser import ValidationError as ValidationError
from .parser import parse as parse
from .types import *
