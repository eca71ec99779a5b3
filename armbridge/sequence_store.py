# armbridge/armbridge/sequence_store.py
"""
Recording buffer and on-disk store for joint sequences.

Way-points are first recorded into a per-interface temporary buffer. A
commit turns the buffer into a `JointSequence`, persists it as one JSON file
per sequence and clears the buffer. Merged pairs live in their own
directory as `{"joint_sequences": [...]}` files.
"""
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

import json
import logging
import threading

from . import constants as const
from .exceptions import ConfigMismatchError
from .exceptions import ConfigurationError
from .sequences import JointAngleSet
from .sequences import JointSequence
from .sequences import SequencePair
from .sequences import file_safe_name
from .sequences import merge_direction

logger = logging.getLogger(__name__)


class RecordingBuffer:
    """Temporary way-points recorded per interface before they are saved."""

    def __init__(self):
        self._records: Dict[str, List[JointAngleSet]] = {}
        self._lock = threading.Lock()

    def record(
        self, interface: str, name: str, angles: Mapping[int, float]
    ) -> JointAngleSet:
        waypoint = JointAngleSet(
            name=name, values={int(m): float(a) for m, a in angles.items()}
        )
        with self._lock:
            self._records.setdefault(interface, []).append(waypoint)
        logger.info(f"Recorded way-point '{name}' on {interface}")
        return waypoint

    def get(self, interface: str) -> List[JointAngleSet]:
        with self._lock:
            return list(self._records.get(interface, []))

    def clear(self, interface: str) -> None:
        with self._lock:
            self._records.pop(interface, None)

    def commit(
        self,
        interface: str,
        name: str,
        side: str,
        arm_model: str = const.DEFAULT_ARM_MODEL,
        store: Optional["SequenceStore"] = None,
    ) -> JointSequence:
        """
        Turns the recorded way-points of `interface` into a sequence.

        When a `store` is given the sequence is saved first; the buffer is
        only cleared once that succeeded.

        Raises:
            ConfigMismatchError: if nothing was recorded or a way-point
                                 addresses a motor of the other side.
        """
        records = self.get(interface)
        if not records:
            raise ConfigMismatchError(f"No recorded way-points on {interface} to save.")
        sequence = JointSequence(
            name=name,
            arm_type=side,
            arm_model=arm_model or const.DEFAULT_ARM_MODEL,
            angles=[JointAngleSet(w.name, dict(w.values)) for w in records],
        )
        sequence.validate_side()
        if store is not None:
            store.save(sequence)
        self.clear(interface)
        return sequence


class SequenceStore:
    """JSON files for single sequences and merged pairs."""

    def __init__(
        self,
        sequence_dir: Union[str, Path] = const.SEQUENCE_DIR,
        merged_dir: Union[str, Path] = const.MERGED_SEQUENCE_DIR,
    ):
        self.sequence_dir = Path(sequence_dir)
        self.merged_dir = Path(merged_dir)
        self.sequences: List[JointSequence] = []

    def _sequence_path(self, name: str) -> Path:
        return self.sequence_dir / f"{file_safe_name(name)}.json"

    def load_all(self) -> List[JointSequence]:
        """Reloads every sequence file; unreadable files are skipped with a warning."""
        self.sequence_dir.mkdir(parents=True, exist_ok=True)
        loaded: List[JointSequence] = []
        for path in sorted(self.sequence_dir.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    sequence = JointSequence.from_dict(json.load(f))
            except (OSError, ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping sequence file {path}: {e}")
                continue
            loaded.append(sequence)
            logger.info(
                f"Loaded sequence {sequence.name} ({sequence.arm_type}, "
                f"{len(sequence.angles)} way-points) from {path.name}"
            )
        self.sequences = loaded
        return list(loaded)

    def save(self, sequence: JointSequence) -> Path:
        self.sequence_dir.mkdir(parents=True, exist_ok=True)
        path = self._sequence_path(sequence.name)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(sequence.to_dict(), f, indent=2, ensure_ascii=False)
        # One file per name, so a save replaces every side held under that name.
        self.sequences = [s for s in self.sequences if s.name != sequence.name]
        self.sequences.append(sequence)
        logger.info(f"Saved sequence {sequence.name} to {path}")
        return path

    def delete(self, name: str) -> None:
        """Deletes a sequence file; a file that is already gone is not an error."""
        path = self._sequence_path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug(f"Sequence file {path} was already gone.")
        self.sequences = [s for s in self.sequences if s.name != name]
        logger.info(f"Deleted sequence {name}")

    def find(self, name: str, side: str) -> Optional[JointSequence]:
        for sequence in self.sequences:
            if sequence.name == name and sequence.arm_type == side:
                return sequence
        return None

    def find_by_name(self, name: str) -> Optional[JointSequence]:
        for sequence in self.sequences:
            if sequence.name == name:
                return sequence
        return None

    def save_pair(self, pair: SequencePair) -> Path:
        self.merged_dir.mkdir(parents=True, exist_ok=True)
        path = self.merged_dir / pair.file_name
        with open(path, "w", encoding="utf-8") as f:
            json.dump(pair.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info(
            f"Saved merged sequence {pair.name} to {path} ({len(pair.sequences)} sequences)"
        )
        return path

    def load_pair(self, file_name: Union[str, Path]) -> SequencePair:
        """
        Reads a merged pair file. Relative names are looked up in `merged_dir`.

        Raises:
            ConfigurationError: if the file cannot be read or parsed.
        """
        path = Path(file_name)
        if not path.is_absolute() and not path.exists():
            path = self.merged_dir / path
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return SequencePair.from_dict(path.stem, data)
        except (OSError, ValueError, TypeError, AttributeError) as e:
            raise ConfigurationError(f"Cannot read merged sequence file {path}: {e}") from e

    def list_pairs(self) -> List[Dict[str, str]]:
        """
        Lists merged pair files: names mentioning up or down that hold a
        left and a right sequence.
        """
        pairs = []
        if not self.merged_dir.is_dir():
            return pairs
        for path in sorted(self.merged_dir.glob("*.json")):
            direction = merge_direction(path.name)
            if direction is None:
                continue
            try:
                pair = self.load_pair(path)
            except ConfigurationError:
                continue
            if pair.has_both_sides():
                pairs.append({"filename": path.name, "name": path.stem, "type": direction})
        return pairs
