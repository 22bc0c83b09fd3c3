"""Task Classifier: split generated items into the selection and open families."""
from typing import TypeVar

from lessonforge.models.items import is_selection

T = TypeVar("T")


def classify(items: list[T]) -> tuple[list[T], list[T]]:
    """Partition ``items`` into ``(selection_items, open_items)``, keeping order.

    single_choice and multiple_choice are selection items; every other tag,
    including a missing or unknown one, lands in the open family. Works on raw
    item dicts and on TrackedItem wrappers alike.
    """
    selection: list[T] = []
    open_items: list[T] = []
    for item in items:
        if is_selection(item):
            selection.append(item)
        else:
            open_items.append(item)
    return selection, open_items
