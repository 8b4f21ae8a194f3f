"""Exceptions raised by pkgcounts.

Caller data passed to ``CountData.add_download_counts`` never raises; these
cover restoring state and the store/CLI layers.
"""


class PkgCountsError(Exception):
    """Base class for pkgcounts errors."""


class InvalidCountDataError(PkgCountsError, ValueError):
    """A serialized count record breaks one of the structure's invariants."""


class InvalidPackageNameError(PkgCountsError, ValueError):
    """A package name does not follow PyPI naming conventions."""


class InvalidCountsFileError(PkgCountsError, ValueError):
    """A daily counts input file could not be interpreted."""
