from __future__ import annotations

from typing import Optional


class AlignmentError(ValueError):
    """Base class for problems that stop a dark-cycle alignment run."""


class MalformedInputError(AlignmentError):
    def __init__(self, stream: str, index: int, message: str) -> None:
        self.stream = stream
        self.index = index
        super().__init__(f"{stream}[{index}]: {message}")


class NoOnsetDetectedError(AlignmentError):
    """
    Raised when no usable dark-cycle onset exists.

    reason:
      - "no_transitions": illumination never crossed the threshold
      - "no_dark_onset": only light onsets were seen and boundary repair produced nothing
      - "all_filtered": the plausibility window removed every candidate
    """

    def __init__(self, reason: str, detail: Optional[str] = None) -> None:
        self.reason = reason
        msg = {
            "no_transitions": "Sensor stream has no ON/OFF transition. Check illumination_threshold.",
            "no_dark_onset": "Sensor stream has no ON->OFF transition and no synthetic onset could be inferred.",
            "all_filtered": "Plausibility window removed every onset candidate.",
        }.get(reason, reason)
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)
