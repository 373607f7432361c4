"""
Inline emphasis for item descriptions.

A run starting with ``＊`` and ending at the next ``：`` or ``:`` has the
text between the delimiters shown bold; the delimiters stay as literal
characters. The transform works on ``TextRun`` sequences instead of
splicing markup, so escaping stays the renderer's job and applying it to
already-formatted runs changes nothing.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Union

BOLD_PATTERN = re.compile(r'＊([^：:]*)([：:])')


@dataclass(frozen=True)
class TextRun:
    text: str
    bold: bool = False


def _split_plain(text: str) -> List[TextRun]:
    runs: List[TextRun] = []
    plain = ''
    position = 0
    for match in BOLD_PATTERN.finditer(text):
        middle, colon = match.group(1), match.group(2)
        plain += text[position:match.start()] + '＊'
        if middle:
            runs.append(TextRun(plain))
            runs.append(TextRun(middle, bold=True))
            plain = colon
        else:
            plain += colon
        position = match.end()
    plain += text[position:]
    if plain:
        runs.append(TextRun(plain))
    return runs


def apply_bold_runs(runs: Iterable[TextRun]) -> List[TextRun]:
    """Re-tokenize the plain runs; bold runs pass through untouched."""
    result: List[TextRun] = []
    for run in runs:
        pieces = [run] if run.bold else _split_plain(run.text)
        for piece in pieces:
            # Merge adjacent plain runs so the output is canonical
            if result and not piece.bold and not result[-1].bold:
                result[-1] = TextRun(result[-1].text + piece.text)
            else:
                result.append(piece)
    return result


def parse_bold_runs(text: Union[str, Sequence[TextRun], None]) -> List[TextRun]:
    """Tokenize a description into runs; accepts text or existing runs."""
    if not text:
        return []
    if isinstance(text, str):
        return apply_bold_runs([TextRun(text)])
    return apply_bold_runs(text)
