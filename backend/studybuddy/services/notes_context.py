"""
StudyBuddy Backend — Notes Context Assembler
==============================================

What:  Serializes a note tree into the plain-text context handed to the AI buddy.
Who:   ChatService (prompt grounding) and NoteTreeService.build_notes_context().

Output format (insertion order, no size cap here):

    User's Study Materials:

    Subject: Biology
      Chapter: Cell Theory
        - Mitochondria (notes)
          Content: Powerhouse of the cell

The prompt builder truncates the text; this module never does.
"""

from typing import List

from studybuddy.schemas.notes import Subject

CONTEXT_HEADER = "User's Study Materials:\n\n"


def build_notes_context(subjects: List[Subject]) -> str:
    parts = [CONTEXT_HEADER]
    for subject in subjects:
        parts.append(f"Subject: {subject.name}\n")
        for chapter in subject.chapters:
            parts.append(f"  Chapter: {chapter.name}\n")
            for note in chapter.notes:
                parts.append(f"    - {note.title} ({note.type})\n")
                if note.content:
                    parts.append(f"      Content: {note.content}\n")
        parts.append("\n")
    return "".join(parts)


def count_notes(subjects: List[Subject]) -> int:
    """Total number of notes across every chapter of every subject."""
    return sum(len(chapter.notes) for subject in subjects for chapter in subject.chapters)
