"""
Job menu entry checks for the pendant.

Runs before the pendant enters its job menu:
1. Optimizes the loaded G-code
2. Validates the program's ZMIN against the machine's Z limit
3. Warns when the program asks for a different tool than the last job

Instead of opening dialogs, each step returns a JobMenuResult. When a result
needs confirmation the caller shows it to the user and, if the user accepts,
calls confirm() to run the rest of the checks.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from gcode_buffer import LineBuffer
from pendant_config import PendantConfig
from smart_gcode import (OptimizeResult, SmartGCodeOptimizer, ToolInfo,
                         exceeds_min_z, get_tool_info)


PROCEED = 'proceed'
NEEDS_CONFIRMATION = 'needs_confirmation'

LOW_Z = 'low_z'
TOOL_CHANGE = 'tool_change'

DIALOGS = {
    LOW_Z: {
        'title': 'Low Z Warning',
        'text': ['Gcode exceeds the', 'Z axis limit.'],
        'accept_button': 'IGNORE',
        'decline_button': 'Back',
    },
    TOOL_CHANGE: {
        'title': 'New tool requested',
        'text': ['Tool change', 'complete?'],
        'accept_button': 'Yes',
        'decline_button': 'No',
    },
}


class JobSession:
    """State kept between jobs (lifetime is up to the caller)"""

    def __init__(self, last_tool_name: Optional[str] = None):
        self.last_tool_name = last_tool_name

    def __repr__(self):
        return f"JobSession(last_tool_name={self.last_tool_name!r})"


@dataclass
class JobMenuResult:
    status: str
    reason: Optional[str] = None
    tool_info: Optional[ToolInfo] = None
    optimize_result: Optional[OptimizeResult] = None

    @property
    def proceed(self) -> bool:
        return self.status == PROCEED

    @property
    def needs_confirmation(self) -> bool:
        return self.status == NEEDS_CONFIRMATION

    @property
    def title(self) -> Optional[str]:
        return DIALOGS[self.reason]['title'] if self.reason else None

    @property
    def text(self) -> List[str]:
        return list(DIALOGS[self.reason]['text']) if self.reason else []

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'status': self.status,
            'reason': self.reason,
            'title': self.title,
            'text': self.text,
            'tool': None,
        }
        if self.reason:
            data['accept_button'] = DIALOGS[self.reason]['accept_button']
            data['decline_button'] = DIALOGS[self.reason]['decline_button']
        if self.tool_info is not None:
            data['tool'] = {'tool_name': self.tool_info.tool_name, 'min_z': self.tool_info.min_z}
        return data


def _check_tool_change(tool_info: ToolInfo, session: JobSession,
                       optimize_result: Optional[OptimizeResult] = None) -> JobMenuResult:
    last_tool = session.last_tool_name
    if last_tool is None or last_tool == tool_info.tool_name:
        session.last_tool_name = tool_info.tool_name
        return JobMenuResult(PROCEED, tool_info=tool_info, optimize_result=optimize_result)

    return JobMenuResult(NEEDS_CONFIRMATION, reason=TOOL_CHANGE, tool_info=tool_info,
                         optimize_result=optimize_result)


def enter_job_menu(doc: LineBuffer, session: JobSession, z_offset: float = 0.0,
                   config: Optional[PendantConfig] = None) -> JobMenuResult:
    """
    Optimize the program and run the pre-job checks.

    Args:
        doc: Loaded program (optimized in place)
        session: Job session holding the last tool name
        z_offset: Current Z work offset (machine coords)
        config: Pendant configuration (defaults if None)

    Returns:
        JobMenuResult - proceed, or a low Z / tool change confirmation
    """
    config = config or PendantConfig()
    optimize_result = SmartGCodeOptimizer(config).optimize(doc)

    tool_info = get_tool_info(doc)
    if tool_info is None:
        return JobMenuResult(PROCEED, optimize_result=optimize_result)

    if exceeds_min_z(tool_info, z_offset, config.machine_min_z):
        return JobMenuResult(NEEDS_CONFIRMATION, reason=LOW_Z, tool_info=tool_info,
                             optimize_result=optimize_result)

    return _check_tool_change(tool_info, session, optimize_result)


def confirm(result: JobMenuResult, session: JobSession) -> JobMenuResult:
    """
    Continue after the user accepted a confirmation.

    Args:
        result: The result that needed confirmation
        session: Job session holding the last tool name

    Returns:
        Next JobMenuResult (a low Z confirmation may still lead to a tool
        change confirmation)
    """
    if not result.needs_confirmation:
        return result

    if result.reason == LOW_Z:
        return _check_tool_change(result.tool_info, session, result.optimize_result)

    if result.reason == TOOL_CHANGE:
        session.last_tool_name = result.tool_info.tool_name
        return JobMenuResult(PROCEED, tool_info=result.tool_info,
                             optimize_result=result.optimize_result)

    raise ValueError(f"Unknown confirmation reason: {result.reason}")
