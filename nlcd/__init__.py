# flake8: noqa
import importlib.metadata

# get the version of the package
__version__ = importlib.metadata.version('nlcd-census')
from nlcd.dep_versions import show_versions
from nlcd.categories import NLCD_CATEGORIES, category_label
