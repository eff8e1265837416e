"""Single-column sort state."""

from typing import Optional

ASC = "ASC"
DESC = "DESC"
DIRECTIONS = (ASC, DESC)


class SortState:
    """
    The single active sort key and its direction.

    Selecting the active key again flips the direction; selecting a different
    key always starts ascending.
    """

    def __init__(self, sort_key: Optional[str] = None, direction: str = DESC):
        if direction not in DIRECTIONS:
            raise ValueError(
                f"Sort direction must be one of {DIRECTIONS}, got '{direction}'"
            )
        self.sort_key = sort_key
        self.direction = direction

    def toggle(self, sort_key: str) -> None:
        """
        Select a sort key.

        Args:
            sort_key: The key to sort by
        """
        if sort_key == self.sort_key:
            self.direction = DESC if self.direction == ASC else ASC
        else:
            self.sort_key = sort_key
            self.direction = ASC

    def to_order_by(self) -> dict:
        """Return the ``orderBy`` object sent to the data source."""
        return {"sort": self.sort_key, "direction": self.direction}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SortState):
            return NotImplemented
        return (self.sort_key, self.direction) == (other.sort_key, other.direction)

    def __repr__(self) -> str:
        return f"SortState(sort_key={self.sort_key!r}, direction='{self.direction}')"
