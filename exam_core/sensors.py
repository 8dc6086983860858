"""Translate raw monitoring samples into candidate proctoring flags.

The face-presence sampler reports a face count about once per second; the
visibility sensor reports discrete hidden/visible transitions. Neither
produces ``looking_away``.
"""
from __future__ import annotations
from typing import Optional

from .types import ProctoringFlag

TAB_SWITCH_DETAILS = "User switched tabs or minimized window"


def flag_from_face_sample(face_count: int, timestamp: int) -> Optional[ProctoringFlag]:
    if face_count <= 0:
        return ProctoringFlag(timestamp=timestamp, type="no_face", details="No face detected in webcam frame")
    if face_count > 1:
        return ProctoringFlag(
            timestamp=timestamp, type="multiple_faces", details=f"Multiple faces detected in webcam frame ({face_count})"
        )
    return None


def flag_from_visibility(hidden: bool, timestamp: int) -> Optional[ProctoringFlag]:
    if hidden:
        return ProctoringFlag(timestamp=timestamp, type="tab_switch", details=TAB_SWITCH_DETAILS)
    return None
