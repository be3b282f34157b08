"""
Calling-window gate.
"""

from governor.calling.window import CallingWindow, WindowCheck, check_window

__all__ = ["CallingWindow", "WindowCheck", "check_window"]
