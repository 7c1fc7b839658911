from __future__ import annotations

from fastapi import Depends, Path

from ..errors import UnknownApiVersionError
from ..modules import Modules, get_modules


# PUBLIC_INTERFACE
def api_version(
    v: str = Path(..., description="API version prefix, e.g. 'v1'"),
    modules: Modules = Depends(get_modules),
) -> str:
    """Reject requests whose ``{v}`` prefix is not an accepted API version."""
    if v not in modules.settings.api_versions:
        raise UnknownApiVersionError(v)
    return v
