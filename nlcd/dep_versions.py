import importlib.metadata
import platform
import sys

# distributions reported by ``nlcd show-versions``, in the order they are printed
DEPENDENCIES = [
    'nlcd-census',
    'numpy',
    'pandas',
    'xarray',
    'rioxarray',
    'rasterio',
    'dask',
    'geopandas',
    'shapely',
    'pyarrow',
    'universal-pathlib',
    'fsspec',
    'pydantic',
    'pydantic-settings',
    'python-dotenv',
    'typer',
    'rich',
]


def dependency_versions() -> dict[str, str | None]:
    """Installed version of each distribution in ``DEPENDENCIES``, or None when missing."""
    versions: dict[str, str | None] = {}
    for dist in DEPENDENCIES:
        try:
            versions[dist] = importlib.metadata.version(dist)
        except importlib.metadata.PackageNotFoundError:
            versions[dist] = None
    return versions


def show_versions(file=None):
    """Print the interpreter, the platform and the versions of the installed dependencies.

    Parameters
    ----------
    file : file-like, optional
        print to the given file-like object. Defaults to sys.stdout.
    """
    if file is None:
        file = sys.stdout
    print('\nINSTALLED VERSIONS', file=file)
    print('------------------', file=file)
    print(f'python: {sys.version.split()[0]}', file=file)
    print(f'platform: {platform.platform()}', file=file)
    print('', file=file)
    for dist, version in dependency_versions().items():
        print(f'{dist}: {version}', file=file)
