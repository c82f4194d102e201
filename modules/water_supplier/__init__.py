# Keep this TINY so importing the package never drags in heavy deps.
from . import lib  # so: from modules.water_supplier import lib
from .main import run  # so: from modules.water_supplier import run

__all__ = ["lib", "run"]
