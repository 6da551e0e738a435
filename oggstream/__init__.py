# Licensed under the GPLv3 - see LICENSE
"""Ogg bitstream framing."""
from importlib.metadata import version, PackageNotFoundError

from .ogg.base import open  # noqa

try:
    __version__ = version(__name__)
except PackageNotFoundError:  # Can happen in an uninstalled source checkout.
    __version__ = ''

del version, PackageNotFoundError

# Define minima for the documentation, but do not bother to explicitly check.
__minimum_python_version__ = '3.10'
__minimum_astropy_version__ = '5.1'
__minimum_numpy_version__ = '1.24'
