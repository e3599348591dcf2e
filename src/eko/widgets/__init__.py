"""Widget exports for the eko UI."""

from .code_block import CodeBlockView
from .conversation import ConversationView
from .input_box import InputLine, ModelPicker
from .message import TurnView
from .status_bar import HeaderBar, StatusLine

__all__ = [
    "CodeBlockView",
    "ConversationView",
    "HeaderBar",
    "InputLine",
    "ModelPicker",
    "StatusLine",
    "TurnView",
]
