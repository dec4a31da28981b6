from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    """The caller on whose behalf a submission or review is made."""

    user_id: str
