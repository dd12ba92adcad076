"""
In-memory G-code document.

Mirrors the editor document the pendant works on: read access by row, and
exactly two mutation primitives (replace a column range, insert full lines).
The optimizer never touches the underlying list directly.
"""

from typing import Iterable, List


class LineBuffer:
    def __init__(self, lines: Iterable[str] = (), newline: str = '\n', final_newline: bool = True):
        self._lines: List[str] = list(lines)
        self.newline = newline  # Written between rows, inserted rows included
        self.final_newline = final_newline

    @classmethod
    def from_text(cls, text: str) -> 'LineBuffer':
        """Split program text into lines, keeping its line ending (LF or CRLF)"""
        newline = '\r\n' if '\r\n' in text else '\n'
        return cls(text.splitlines(), newline, text.endswith(('\n', '\r')))

    @classmethod
    def from_file(cls, path: str) -> 'LineBuffer':
        # newline='' keeps CRLF so save() writes the file back the same way
        with open(path, 'r', newline='') as f:
            return cls.from_text(f.read())

    def get_length(self) -> int:
        return len(self._lines)

    def get_line(self, row: int) -> str:
        return self._lines[row]

    def replace(self, row: int, start_column: int, end_column: int, text: str):
        """Replace columns [start_column, end_column) of one row with text"""
        line = self._lines[row]
        self._lines[row] = line[:start_column] + text + line[end_column:]

    def insert_full_lines(self, row: int, lines: List[str]):
        """Insert whole lines before `row` (row == length appends)"""
        self._lines[row:row] = lines

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    @property
    def text(self) -> str:
        end = self.newline if self._lines and self.final_newline else ''
        return self.newline.join(self._lines) + end

    def save(self, path: str):
        with open(path, 'w', newline='') as f:
            f.write(self.text)

    def __len__(self):
        return len(self._lines)

    def __iter__(self):
        return iter(self._lines)
