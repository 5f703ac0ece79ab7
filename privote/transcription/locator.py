"""
Locates the whisper.cpp executable and the shared libraries it needs.

Resolution is repeated for every transcription because the answer depends
on environment variables and on whether Privote runs from a packaged build
or a development checkout.
"""

import logging
import os
import platform
import shutil
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from privote.core.models import EngineLocation

logger = logging.getLogger(__name__)


ENGINE_PATH_ENV = "WHISPER_CPP_PATH"
LIBRARY_PATH_ENV = "WHISPER_CPP_LIB_PATH"

SYSTEM_LOCATIONS = [
    Path("/usr/local/bin/whisper-cli"),
    Path("/opt/homebrew/bin/whisper-cli"),
    Path("/usr/bin/whisper-cli"),
    Path("/usr/local/bin/whisper"),
]

# Names tried on PATH after the fixed locations
BINARY_NAMES = ["whisper-cli", "whisper-cpp"]

# Environment variable used by the dynamic loader on each platform
LIBRARY_PATH_VARS = {
    "Darwin": "DYLD_LIBRARY_PATH",
    "Linux": "LD_LIBRARY_PATH",
    "Windows": "PATH",
}


class EngineLocator:
    """
    Resolves where whisper-cli lives for the current platform.

    Candidates are tried in order: explicit path, WHISPER_CPP_PATH, the
    bundled resources directory, well-known system locations, then PATH.
    """

    def __init__(
        self,
        resources_dir: Path,
        system: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        system_locations: Optional[List[Path]] = None,
        search_path: bool = True,
    ):
        """
        Initialize the locator.

        Args:
            resources_dir: Packaged/installed resource bundle directory
            system: Platform name as returned by platform.system()
            environ: Environment to read overrides from (defaults to os.environ)
            system_locations: Well-known install paths to probe
            search_path: Whether to fall back to a PATH lookup
        """
        self.resources_dir = Path(resources_dir)
        self.system = system or platform.system()
        self.environ = environ if environ is not None else os.environ
        self.system_locations = (
            list(system_locations) if system_locations is not None else list(SYSTEM_LOCATIONS)
        )
        self.search_path = search_path

    @property
    def executable_name(self) -> str:
        return "whisper-cli.exe" if self.system == "Windows" else "whisper-cli"

    def candidates(self, explicit_path: Optional[Union[str, Path]] = None) -> List[Path]:
        """Return every path the locator would check, in priority order."""
        paths: List[Path] = []
        if explicit_path:
            paths.append(Path(explicit_path))

        env_path = self.environ.get(ENGINE_PATH_ENV)
        if env_path:
            paths.append(Path(env_path))

        paths.append(self.resources_dir / self.executable_name)
        paths.append(self.resources_dir / "whisper.cpp" / "build" / "bin" / self.executable_name)
        paths.extend(self.system_locations)

        if self.search_path:
            for name in BINARY_NAMES:
                found = shutil.which(name, path=self.environ.get("PATH"))
                if found:
                    paths.append(Path(found))
        return paths

    def library_dir(self) -> Optional[Path]:
        """Directory of shared libraries shipped with the engine, if it exists."""
        env_dir = self.environ.get(LIBRARY_PATH_ENV)
        lib_dir = Path(env_dir) if env_dir else self.resources_dir / "lib"
        return lib_dir if lib_dir.is_dir() else None

    def resolve(self, explicit_path: Optional[Union[str, Path]] = None) -> EngineLocation:
        """
        Find the engine executable.

        Returns:
            EngineLocation; its executable is None when nothing was found
        """
        candidates = self.candidates(explicit_path)
        executable = next((path for path in candidates if path.is_file()), None)
        library_dir = self.library_dir()

        if executable is None:
            logger.warning(
                "whisper.cpp executable not found; checked: "
                + ", ".join(str(path) for path in candidates)
            )
        else:
            logger.debug(f"Found whisper.cpp executable at {executable}")

        return EngineLocation(
            executable=executable,
            library_dir=library_dir,
            candidates=tuple(candidates),
        )

    def child_environment(
        self,
        location: EngineLocation,
        base_env: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        """
        Build the environment for the engine process.

        The library directory is prepended to the platform's loader search
        variable; everything else is inherited from base_env.
        """
        env = dict(base_env if base_env is not None else os.environ)
        if location.library_dir is None:
            return env

        var = LIBRARY_PATH_VARS.get(self.system)
        if var is None:
            return env

        separator = ";" if self.system == "Windows" else ":"
        existing = env.get(var)
        lib_dir = str(location.library_dir)
        env[var] = f"{lib_dir}{separator}{existing}" if existing else lib_dir
        logger.debug(f"{var}: {env[var]}")
        return env
