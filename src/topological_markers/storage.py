"""HDF5 storage for operators, marker maps and evolution runs.

Diagonalizing and evolving large lattices is slow, so results are worth
keeping.  :class:`OperatorStore` writes them to an HDF5 file with a
fixed layout.

File Structure
--------------
::

    /metadata
        - version : str
        - created : timestamp
    /operators/{name}            dataset (complex or real matrix)
        - lattice_size : (rows, cols), optional
        - timestamp : str
    /maps/{name}                 dataset (numeric lattice array)
        - convention : str
    /evolution/{run}
        - fields : names of the frame fields after ``t``
    /evolution/{run}/{index:06d}
        - t : float
        {field}                  dataset, one per frame field

Examples
--------
>>> with OperatorStore('results/chern.h5', mode='w') as store:
...     store.store_operator('H', H, lattice_size=(15, 15))
...     store.store_frames('field_on', run_evolution(specs, times, h))
>>> store = load_store('results/chern.h5')
>>> H, size = store.get_operator('H')
>>> frames = store.load_frames('field_on')
>>> store.close()
"""

from __future__ import annotations

from collections import namedtuple
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Tuple, Union

import h5py
import numpy as np

from .lattice import CoordinateMap, LatticeSize, as_lattice_size

STORE_VERSION = "1.0"


def _check_name(name: str) -> str:
    if not name or "/" in name:
        raise ValueError(f"Invalid entry name {name!r}")
    return name


class OperatorStore:
    """HDF5 file holding operators, coordinate maps and evolution frames.

    Parameters
    ----------
    filename : str or Path
        Path to the HDF5 file.
    mode : {'r', 'r+', 'w', 'a'}, optional
        File mode as in :class:`h5py.File`.  Default is ``'a'``.

    Attributes
    ----------
    filename : Path
        Store file path.
    file : h5py.File
        Open HDF5 file handle.
    """

    def __init__(self, filename: Union[str, Path], mode: str = "a"):
        self.filename = Path(filename)
        self.mode = mode
        if mode != "r":
            self.filename.parent.mkdir(parents=True, exist_ok=True)
        self.file = h5py.File(self.filename, mode)
        if mode in ("w", "a") and "metadata" not in self.file:
            self._init_metadata()

    def _init_metadata(self):
        meta = self.file.create_group("metadata")
        meta.attrs["version"] = STORE_VERSION
        meta.attrs["created"] = datetime.now().isoformat()

    def _check_writable(self):
        if self.mode == "r":
            raise ValueError("Cannot write to a store opened in read-only mode")

    def _replace(self, path: str) -> None:
        if path in self.file:
            del self.file[path]

    def has_operator(self, name: str) -> bool:
        return f"/operators/{name}" in self.file

    def store_operator(self, name: str, matrix, lattice_size=None) -> None:
        """Store ``matrix`` under ``name``, replacing an existing entry.

        Parameters
        ----------
        name : str
            Entry name (no slashes).
        matrix : array_like
            Operator to store.
        lattice_size : tuple of int, optional
            Lattice the operator is defined on.
        """
        self._check_writable()
        path = f"/operators/{_check_name(name)}"
        self._replace(path)
        dset = self.file.create_dataset(path, data=np.asarray(matrix))
        if lattice_size is not None:
            dset.attrs["lattice_size"] = np.asarray(as_lattice_size(lattice_size))
        dset.attrs["timestamp"] = datetime.now().isoformat()
        self.file.flush()

    def get_operator(self, name: str) -> Tuple[np.ndarray, Optional[LatticeSize]]:
        """Return the stored matrix and its lattice size (``None`` if unknown).

        Raises
        ------
        KeyError
            If ``name`` is not in the store.
        """
        path = f"/operators/{name}"
        if path not in self.file:
            raise KeyError(f"No stored operator named {name!r}")
        dset = self.file[path]
        size = None
        if "lattice_size" in dset.attrs:
            size = as_lattice_size(tuple(int(v) for v in dset.attrs["lattice_size"]))
        return dset[()], size

    def list_operators(self) -> List[str]:
        if "operators" not in self.file:
            return []
        return sorted(self.file["operators"].keys())

    def store_map(self, name: str, cmap: CoordinateMap) -> None:
        """Store a numeric coordinate map in its own convention."""
        self._check_writable()
        path = f"/maps/{_check_name(name)}"
        self._replace(path)
        dset = self.file.create_dataset(path, data=np.asarray(cmap.lattice))
        dset.attrs["convention"] = cmap.convention
        self.file.flush()

    def get_map(self, name: str) -> CoordinateMap:
        path = f"/maps/{name}"
        if path not in self.file:
            raise KeyError(f"No stored map named {name!r}")
        dset = self.file[path]
        convention = dset.attrs["convention"]
        if isinstance(convention, bytes):
            convention = convention.decode()
        return CoordinateMap(dset[()], str(convention))

    def store_frames(self, run: str, frames: Iterable[tuple]) -> int:
        """Consume ``frames`` from :func:`run_evolution` and store them.

        Returns
        -------
        int
            Number of frames written.
        """
        self._check_writable()
        path = f"/evolution/{_check_name(run)}"
        self._replace(path)
        group = self.file.create_group(path)
        count = 0
        fields = None
        for index, frame in enumerate(frames):
            if fields is None:
                fields = [f for f in frame._fields if f != "t"]
                group.attrs["fields"] = np.array(fields, dtype=h5py.string_dtype())
            sub = group.create_group(f"{index:06d}")
            sub.attrs["t"] = float(frame.t)
            for field_name in fields:
                sub.create_dataset(field_name, data=np.asarray(getattr(frame, field_name)))
            count += 1
        self.file.flush()
        return count

    def load_frames(self, run: str) -> List[tuple]:
        """Load the frames of ``run`` as ``EvolutionFrame`` named tuples."""
        path = f"/evolution/{run}"
        if path not in self.file:
            raise KeyError(f"No stored evolution run named {run!r}")
        group = self.file[path]
        if "fields" not in group.attrs:
            return []
        fields = [f.decode() if isinstance(f, bytes) else str(f) for f in group.attrs["fields"]]
        frame_type = namedtuple("EvolutionFrame", ["t"] + fields)
        frames = []
        for key in sorted(group.keys()):
            sub = group[key]
            frames.append(frame_type(float(sub.attrs["t"]), *(sub[f][()] for f in fields)))
        return frames

    def close(self):
        """Close the store file."""
        self.file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self):
        return (
            f"OperatorStore('{self.filename}', mode='{self.mode}', "
            f"operators={len(self.list_operators())})"
        )


def create_store(filename: Union[str, Path]) -> OperatorStore:
    """Create a new store file (truncates if it exists)."""

    return OperatorStore(filename, mode="w")


def load_store(filename: Union[str, Path]) -> OperatorStore:
    """Open an existing store file for reading and writing.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """

    if not Path(filename).exists():
        raise FileNotFoundError(f"Store file not found: {filename}")
    return OperatorStore(filename, mode="r+")
