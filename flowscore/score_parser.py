"""ScoreParser: turns MusicXML text into a typed Score."""

from __future__ import annotations

import codecs
import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Final

from flowscore.errors import DocumentError, SemanticError
from flowscore.score_models import (
    Actuate,
    Dynamic,
    HardTrill,
    Hold,
    Measure,
    Note,
    Part,
    Rest,
    Score,
    Signature,
    Trill,
)

logger = logging.getLogger(__name__)

# Matches a DOCTYPE declaration, including an optional internal subset.
DOCTYPE_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"<!DOCTYPE[^>\[]*(\[[^\]]*\])?\s*>", re.IGNORECASE | re.DOTALL
)

#: Dynamic given to ornaments that appear before any dynamics marking.
DEFAULT_ORNAMENT_DYNAMIC: Final[Dynamic] = Dynamic.MF

HOLD_NOTEHEAD: Final[str] = "x"

# Encoding named in the XML declaration of an undecoded document.
ENCODING_PATTERN: Final[re.Pattern[bytes]] = re.compile(
    rb"^<\?xml[^>]*?encoding\s*=\s*[\"']([A-Za-z][A-Za-z0-9._-]*)[\"']"
)


def strip_doctype(text: str) -> str:
    """Remove the DOCTYPE declaration so the DTD is never fetched or resolved."""
    return DOCTYPE_PATTERN.sub("", text, count=1)


def detect_encoding(data: bytes) -> str:
    """Pick a codec from the byte order mark, then the XML declaration, else UTF-8."""
    if data.startswith(codecs.BOM_UTF8):
        return "utf-8-sig"
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return "utf-16"
    if data.startswith(b"<\x00"):
        return "utf-16-le"
    if data.startswith(b"\x00<"):
        return "utf-16-be"
    declared = ENCODING_PATTERN.match(data)
    if declared is None:
        return "utf-8"
    name = declared.group(1).decode("ascii")
    # Past the checks above the bytes are ASCII-compatible, so a UTF-16/32 label is stale.
    return "utf-8" if name.lower().startswith(("utf-16", "utf-32")) else name


def decode_document(data: bytes) -> str:
    """
    Decode a MusicXML file's bytes to text.

    Raises:
        DocumentError: If the bytes are not valid in the detected encoding.
    """
    encoding = detect_encoding(data)
    try:
        return data.decode(encoding)
    except (LookupError, UnicodeDecodeError) as exc:
        raise DocumentError(f"Could not decode MusicXML as {encoding}: {exc}") from exc


def _measure_label(number: int | None) -> str:
    return "measure unknown" if number is None else f"measure {number}"


class ScoreParser:
    """
    Parse the MusicXML subset used for haptic scores.

    Reading rules
    -------------
    * ``score-part`` elements give each part its name, ``part`` elements give
      its measures; both must be present for every part id.
    * The most recent dynamics marking (from a ``direction`` or a note's own
      ``notations/dynamics``) is threaded forward through every note, rest and
      measure of a part.
    * Signature and divisions are inherited from the previous measure when a
      measure does not restate them. The first measure must state both.

    Each note is classified in a fixed order: rest, then x notehead (Hold),
    then trill mark (HardTrill), then tremolo (Trill), otherwise Actuate.
    """

    def __init__(self, ornament_dynamic: Dynamic = DEFAULT_ORNAMENT_DYNAMIC) -> None:
        self.ornament_dynamic = ornament_dynamic

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _load_root(self, text: str) -> ET.Element:
        try:
            return ET.fromstring(strip_doctype(text))
        except ET.ParseError as exc:
            raise DocumentError(f"Could not parse MusicXML: {exc}") from exc

    def _part_names(self, root: ET.Element) -> dict[str, str]:
        names: dict[str, str] = {}
        for score_part in root.iter("score-part"):
            part_id = score_part.get("id")
            if part_id is None:
                raise DocumentError("score-part without an id attribute")
            names[part_id] = (score_part.findtext("part-name") or "").strip()
        return names

    def _part_elements(self, root: ET.Element) -> dict[str, ET.Element]:
        parts: dict[str, ET.Element] = {}
        for part in root.iter("part"):
            part_id = part.get("id")
            if part_id is None:
                raise DocumentError("part without an id attribute")
            parts[part_id] = part
        return parts

    def _measure_number(self, measure: ET.Element) -> int | None:
        try:
            return int(measure.get("number", ""))
        except ValueError:
            return None

    def _int_text(
        self, element: ET.Element, path: str, part_id: str, number: int | None
    ) -> int | None:
        text = element.findtext(path)
        if text is None:
            return None
        try:
            return int(text.strip())
        except ValueError:
            raise SemanticError(
                f"Part '{part_id}', {_measure_label(number)}: invalid {path} '{text}'",
                part_id=part_id,
                measure_number=number,
            ) from None

    def _signature(
        self, attributes: ET.Element, part_id: str, number: int | None
    ) -> Signature | None:
        time = attributes.find("time")
        if time is None:
            return None
        beats_text = time.findtext("beats")
        beat_type = self._int_text(time, "beat-type", part_id, number)
        if beats_text is None or beat_type is None:
            return None
        try:
            # Composite signatures such as 3+2/8 add up their beat groups.
            beats = sum(int(group) for group in beats_text.split("+"))
        except ValueError:
            raise SemanticError(
                f"Part '{part_id}', {_measure_label(number)}: invalid beats '{beats_text}'",
                part_id=part_id,
                measure_number=number,
            ) from None
        return Signature(beats=beats, beat_type=beat_type)

    def _dynamic_in(self, element: ET.Element) -> Dynamic | None:
        """Return the first recognised dynamics mark below *element*, if any."""
        for dynamics in element.iter("dynamics"):
            for mark in dynamics:
                dynamic = Dynamic.from_tag(mark.tag)
                if dynamic is not None:
                    return dynamic
        return None

    def _note_duration(self, note: ET.Element, part_id: str, number: int | None) -> int:
        duration = self._int_text(note, "duration", part_id, number)
        if duration is None or duration < 0:
            raise SemanticError(
                f"Part '{part_id}', {_measure_label(number)}: note without a valid duration",
                part_id=part_id,
                measure_number=number,
            )
        return duration

    def _classify_note(
        self,
        note: ET.Element,
        dynamic: Dynamic | None,
        part_id: str,
        number: int | None,
    ) -> Note:
        duration = self._note_duration(note, part_id, number)

        if note.find("rest") is not None:
            if dynamic is None:
                raise SemanticError(
                    f"Part '{part_id}', {_measure_label(number)}: rest before any dynamics marking",
                    part_id=part_id,
                    measure_number=number,
                )
            return Rest(dynamic=dynamic, duration=duration)

        notehead = (note.findtext("notehead") or "").strip()
        if notehead == HOLD_NOTEHEAD:
            return Hold(duration=duration)

        if note.find("notations/ornaments/trill-mark") is not None:
            return HardTrill(dynamic=dynamic or self.ornament_dynamic, duration=duration)

        if note.find("notations/ornaments/tremolo") is not None:
            return Trill(dynamic=dynamic or self.ornament_dynamic, duration=duration)

        if dynamic is None:
            raise SemanticError(
                f"Part '{part_id}', {_measure_label(number)}: note before any dynamics marking",
                part_id=part_id,
                measure_number=number,
            )
        return Actuate(dynamic=dynamic, duration=duration)

    def _parse_measure(
        self,
        measure: ET.Element,
        dynamic: Dynamic | None,
        part_id: str,
    ) -> tuple[int | None, Signature | None, int | None, list[Note], Dynamic | None]:
        """
        Read one measure's own attributes and notes.

        Args:
            measure: The ``measure`` element.
            dynamic: Last dynamic seen before this measure.
            part_id: Owning part, for error messages.

        Returns:
            (number, signature or None, divisions or None, notes, last dynamic)
        """
        number = self._measure_number(measure)
        signature: Signature | None = None
        divisions: int | None = None
        notes: list[Note] = []

        for child in measure:
            if child.tag == "attributes":
                signature = self._signature(child, part_id, number) or signature
                found = self._int_text(child, "divisions", part_id, number)
                divisions = found if found is not None else divisions
            elif child.tag == "direction":
                dynamic = self._dynamic_in(child) or dynamic
            elif child.tag == "note":
                # Single voice only: chord tones and grace notes take no time.
                if child.find("chord") is not None or child.find("grace") is not None:
                    continue
                notations = child.find("notations")
                if notations is not None:
                    dynamic = self._dynamic_in(notations) or dynamic
                notes.append(self._classify_note(child, dynamic, part_id, number))

        return number, signature, divisions, notes, dynamic

    def _parse_part(self, part_id: str, part: ET.Element) -> tuple[Measure, ...]:
        measures: list[Measure] = []
        dynamic: Dynamic | None = None
        signature: Signature | None = None
        divisions: int | None = None

        for position, element in enumerate(part.findall("measure"), start=1):
            number, own_signature, own_divisions, notes, dynamic = self._parse_measure(
                element, dynamic, part_id
            )
            signature = own_signature or signature
            divisions = own_divisions if own_divisions is not None else divisions
            if signature is None or divisions is None:
                missing = " and ".join(
                    name
                    for name, value in (("time signature", signature), ("divisions", divisions))
                    if value is None
                )
                raise SemanticError(
                    f"Part '{part_id}', {_measure_label(number)}: first measure lacks {missing}",
                    part_id=part_id,
                    measure_number=number,
                )
            if divisions <= 0:
                raise SemanticError(
                    f"Part '{part_id}', {_measure_label(number)}: divisions must be positive",
                    part_id=part_id,
                    measure_number=number,
                )
            measures.append(
                Measure(
                    number=number if number is not None else position,
                    signature=signature,
                    divisions_per_quarter=divisions,
                    notes=tuple(notes),
                )
            )

        return tuple(measures)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(self, text: str) -> Score:
        """
        Parse MusicXML text into a Score.

        Raises:
            DocumentError: If the XML is malformed or part ids do not correlate.
            SemanticError: If a part breaks the signature/divisions or dynamics rules.
        """
        root = self._load_root(text)
        names = self._part_names(root)
        elements = self._part_elements(root)

        for part_id in elements:
            if part_id not in names:
                raise DocumentError(
                    f"Part '{part_id}' has measures but no score-part name", part_id=part_id
                )

        score: Score = {}
        for part_id, name in names.items():
            element = elements.get(part_id)
            measures = self._parse_part(part_id, element) if element is not None else ()
            if not measures:
                raise DocumentError(
                    f"Part '{part_id}' ({name}) has a name but no measures", part_id=part_id
                )
            logger.debug("Parsed part %s (%s): %d measure(s)", part_id, name, len(measures))
            score[part_id] = Part(name=name, measures=measures)

        return score

    def parse_file(self, path: str | Path) -> Score:
        """Read a MusicXML file in any encoding XML allows and parse it."""
        return self.parse(decode_document(Path(path).read_bytes()))
