"""
ChordPro parsing.

Turns ChordPro-formatted text into a ParsedSong: song metadata taken from
directives such as ``{title: ...}`` plus a list of sections made of lines,
where each line is split into segments carrying an optional chord.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

COMMENT_DIRECTIVES = {"comment", "c", "comment_italic", "ci", "comment_box", "cb"}


class SectionType(str, Enum):
    """Song section kinds recognised in section directives."""

    VERSE = "verse"
    CHORUS = "chorus"
    PRE_CHORUS = "pre-chorus"
    BRIDGE = "bridge"
    INTRO = "intro"
    OUTRO = "outro"
    INSTRUMENTAL = "instrumental"
    SOLO = "solo"
    INTERLUDE = "interlude"
    TAG = "tag"
    ENDING = "ending"
    UNKNOWN = "unknown"

    @property
    def display_name(self) -> str:
        if self is SectionType.UNKNOWN:
            return "Section"
        if self is SectionType.PRE_CHORUS:
            return "Pre-Chorus"
        return self.value.capitalize()

    @classmethod
    def from_directive(cls, name: str) -> "SectionType":
        """Map a directive or section name ("chorus", "Pre_Chorus") to a type."""
        normalized = name.strip().lower()
        for char in ("_", "-", " "):
            normalized = normalized.replace(char, "")
        return _SECTION_ALIASES.get(normalized, cls.UNKNOWN)


_SECTION_ALIASES = {
    "verse": SectionType.VERSE,
    "chorus": SectionType.CHORUS,
    "refrain": SectionType.CHORUS,
    "prechorus": SectionType.PRE_CHORUS,
    "bridge": SectionType.BRIDGE,
    "intro": SectionType.INTRO,
    "outro": SectionType.OUTRO,
    "instrumental": SectionType.INSTRUMENTAL,
    "solo": SectionType.SOLO,
    "interlude": SectionType.INTERLUDE,
    "tag": SectionType.TAG,
    "ending": SectionType.ENDING,
}


class LineType(str, Enum):
    LYRICS = "lyrics"
    CHORDS_ONLY = "chords_only"
    COMMENT = "comment"
    BLANK = "blank"


@dataclass
class LineSegment:
    """A run of lyric text, optionally with the chord played at its start."""

    text: str
    chord: Optional[str] = None
    position: int = 0  # Character offset of the text within the lyric line

    @property
    def has_chord(self) -> bool:
        return self.display_chord is not None

    @property
    def display_chord(self) -> Optional[str]:
        if self.chord is None:
            return None
        chord = self.chord.strip()
        return chord or None


@dataclass
class SongLine:
    segments: List[LineSegment]
    line_type: LineType
    raw_text: str = ""

    @classmethod
    def comment(cls, text: str) -> "SongLine":
        return cls(segments=[LineSegment(text=text)], line_type=LineType.COMMENT, raw_text=text)

    @classmethod
    def blank(cls) -> "SongLine":
        return cls(segments=[], line_type=LineType.BLANK)

    @property
    def text(self) -> str:
        """Lyric text with chords removed."""
        return "".join(segment.text for segment in self.segments)

    @property
    def chords(self) -> List[str]:
        return [s.display_chord for s in self.segments if s.display_chord is not None]

    @property
    def has_chords(self) -> bool:
        return any(segment.has_chord for segment in self.segments)


@dataclass
class SongSection:
    section_type: SectionType
    lines: List[SongLine]
    index: int = 1  # 1-based count among sections of the same type
    label: str = ""

    @property
    def text(self) -> str:
        return "\n".join(line.text for line in self.lines)

    @property
    def unique_chords(self) -> Set[str]:
        return {chord for line in self.lines for chord in line.chords}

    @property
    def has_chords(self) -> bool:
        return any(line.has_chords for line in self.lines)


@dataclass
class ParsedSong:
    """Structured representation of a parsed ChordPro document."""

    title: Optional[str] = None
    subtitle: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    key: Optional[str] = None
    original_key: Optional[str] = None
    tempo: Optional[int] = None
    time_signature: Optional[str] = None
    capo: Optional[int] = None
    year: Optional[int] = None
    copyright: Optional[str] = None
    ccli_number: Optional[str] = None
    composer: Optional[str] = None
    lyricist: Optional[str] = None
    arranger: Optional[str] = None
    sections: List[SongSection] = field(default_factory=list)
    raw_text: str = ""

    @property
    def unique_chords(self) -> Set[str]:
        chords: Set[str] = set()
        for section in self.sections:
            chords |= section.unique_chords
        return chords

    @property
    def all_chords(self) -> List[str]:
        """All chords in the order they appear."""
        return [chord for s in self.sections for line in s.lines for chord in line.chords]

    def sections_of_type(self, section_type: SectionType) -> List[SongSection]:
        return [s for s in self.sections if s.section_type == section_type]

    @property
    def verses(self) -> List[SongSection]:
        return self.sections_of_type(SectionType.VERSE)

    @property
    def choruses(self) -> List[SongSection]:
        return self.sections_of_type(SectionType.CHORUS)

    @property
    def bridges(self) -> List[SongSection]:
        return self.sections_of_type(SectionType.BRIDGE)

    @property
    def has_chords(self) -> bool:
        return any(section.has_chords for section in self.sections)

    @property
    def total_lines(self) -> int:
        return sum(len(section.lines) for section in self.sections)

    @property
    def lyrics_only(self) -> str:
        """Song text without chords, one labelled block per section."""
        return "\n\n".join(f"{s.label}\n{s.text}" for s in self.sections)


# Directive name -> (ParsedSong attribute, is_integer)
_METADATA_DIRECTIVES: Dict[str, Tuple[str, bool]] = {
    "title": ("title", False),
    "t": ("title", False),
    "subtitle": ("subtitle", False),
    "st": ("subtitle", False),
    "artist": ("artist", False),
    "a": ("artist", False),
    "album": ("album", False),
    "key": ("key", False),
    "k": ("key", False),
    "original_key": ("original_key", False),
    "originalkey": ("original_key", False),
    "tempo": ("tempo", True),
    "time": ("time_signature", False),
    "time_signature": ("time_signature", False),
    "timesignature": ("time_signature", False),
    "capo": ("capo", True),
    "year": ("year", True),
    "copyright": ("copyright", False),
    "ccli": ("ccli_number", False),
    "ccli_number": ("ccli_number", False),
    "cclinumber": ("ccli_number", False),
    "composer": ("composer", False),
    "lyricist": ("lyricist", False),
    "arranger": ("arranger", False),
}


def parse_directive(line: str) -> Optional[Tuple[str, str]]:
    """
    Split a ``{name: value}`` or ``{name}`` directive.

    Returns:
        (name, value) with surrounding whitespace removed, or None if the
        line is not a directive
    """
    if not (line.startswith("{") and line.endswith("}")):
        return None
    content = line[1:-1]
    name, sep, value = content.partition(":")
    if not sep:
        return content.strip(), ""
    return name.strip(), value.strip()


def _apply_metadata(song: ParsedSong, name: str, value: str) -> None:
    target = _METADATA_DIRECTIVES.get(name.strip().lower())
    if target is None:
        return
    attribute, is_integer = target
    if is_integer:
        try:
            setattr(song, attribute, int(value.strip()))
        except ValueError:
            logger.debug("Ignoring non-numeric %s directive: %r", name, value)
        return
    setattr(song, attribute, value)


def _section_change(directive: str) -> Optional[SectionType]:
    """Section type opened by a directive, or None if it is not a section marker."""
    normalized = directive.lower().replace("_", "")
    if normalized.startswith("startof"):
        return SectionType.from_directive(normalized[len("startof"):])
    if normalized.startswith("soc"):
        return SectionType.CHORUS
    if normalized.startswith("sov"):
        return SectionType.VERSE
    if normalized.startswith("sob"):
        return SectionType.BRIDGE
    section_type = SectionType.from_directive(directive)
    if section_type is not SectionType.UNKNOWN:
        return section_type
    return None


def parse_line(line: str) -> SongLine:
    """Split a line with inline ``[Chord]`` markup into segments."""
    segments: List[LineSegment] = []
    position = 0
    current_text = ""
    pending_chord: Optional[str] = None

    i = 0
    while i < len(line):
        char = line[i]
        if char == "[":
            close = line.find("]", i + 1)
            if close == -1:
                # Unterminated chord: keep the rest as lyric text
                current_text += line[i:]
                break
            if current_text or pending_chord is not None:
                segments.append(LineSegment(current_text, pending_chord, position))
                position += len(current_text)
                current_text = ""
            pending_chord = line[i + 1:close]
            i = close + 1
        else:
            current_text += char
            i += 1

    if current_text or pending_chord is not None:
        segments.append(LineSegment(current_text, pending_chord, position))

    if not segments:
        line_type = LineType.BLANK
    elif all(s.has_chord and not s.text.strip() for s in segments):
        line_type = LineType.CHORDS_ONLY
    else:
        line_type = LineType.LYRICS

    return SongLine(segments=segments, line_type=line_type, raw_text=line)


def merge_chord_line(chords_line: SongLine, lyrics_line: SongLine) -> SongLine:
    """Place the chords of a chords-only line over the following lyric line."""
    placements = sorted(
        (segment.position, segment.display_chord)
        for segment in chords_line.segments
        if segment.display_chord is not None
    )
    if not placements:
        return lyrics_line

    text = lyrics_line.text
    segments: List[LineSegment] = []
    first = min(placements[0][0], len(text))
    if first > 0:
        segments.append(LineSegment(text[:first], None, 0))

    for i, (pos, chord) in enumerate(placements):
        start = min(pos, len(text))
        end = min(placements[i + 1][0], len(text)) if i + 1 < len(placements) else len(text)
        segments.append(LineSegment(text[start:max(start, end)], chord, start))

    return SongLine(segments=segments, line_type=LineType.LYRICS, raw_text=lyrics_line.raw_text)


def _label_sections(sections: List[SongSection]) -> None:
    totals: Dict[SectionType, int] = {}
    for section in sections:
        totals[section.section_type] = totals.get(section.section_type, 0) + 1
    for section in sections:
        name = section.section_type.display_name
        section.label = f"{name} {section.index}" if totals[section.section_type] > 1 else name


def parse(text: str) -> ParsedSong:
    """
    Parse ChordPro formatted text.

    Args:
        text: Raw ChordPro document

    Returns:
        ParsedSong with metadata from directives and the song body split
        into sections. Text with no lines at all yields no sections.
    """
    song = ParsedSong(raw_text=text)
    sections: List[SongSection] = []
    counters: Dict[SectionType, int] = {}
    current_type = SectionType.VERSE
    current_lines: List[SongLine] = []
    pending_chords: Optional[SongLine] = None

    def flush_pending():
        nonlocal pending_chords
        if pending_chords is not None:
            current_lines.append(pending_chords)
            pending_chords = None

    def close_section():
        nonlocal current_lines
        if not current_lines:
            return
        index = counters.get(current_type, 0) + 1
        counters[current_type] = index
        sections.append(SongSection(section_type=current_type, lines=current_lines, index=index))
        current_lines = []

    for raw_line in text.splitlines():
        line = raw_line.strip()

        # Skip leading blank lines
        if not sections and not current_lines and pending_chords is None and not line:
            continue

        directive = parse_directive(line)
        if directive is not None:
            name, value = directive
            flush_pending()
            if name.lower() in COMMENT_DIRECTIVES:
                current_lines.append(SongLine.comment(value))
                continue

            _apply_metadata(song, name, value)
            new_type = _section_change(name)
            if new_type is not None:
                close_section()
                current_type = new_type
            continue

        if line.startswith("#"):
            flush_pending()
            current_lines.append(SongLine.comment(line[1:].strip()))
            continue

        if not line:
            flush_pending()
            current_lines.append(SongLine.blank())
            continue

        parsed_line = parse_line(line)
        if parsed_line.line_type == LineType.CHORDS_ONLY:
            flush_pending()
            pending_chords = parsed_line
        elif pending_chords is not None:
            current_lines.append(merge_chord_line(pending_chords, parsed_line))
            pending_chords = None
        else:
            current_lines.append(parsed_line)

    flush_pending()
    close_section()
    _label_sections(sections)

    song.sections = sections
    return song
