"""platbuild - multi-platform native build orchestration.

Declares native executables, shared libraries and custom Make steps once,
then builds them for any registered platform:

    >>> from pathlib import Path
    >>> from platbuild.graph import NativeProject
    >>> from platbuild.backend import CommandBackend
    >>>
    >>> project = NativeProject(Path("."))
    >>> project.add_shared_library("linkFooLinux64", "linux64", "libfoo.so", ["make", "OUT={output}"])
    >>> project.request("buildNatives_linux64")
    >>> graph = project.finalize(CommandBackend(Path(".")))
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
