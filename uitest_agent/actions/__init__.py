from .action_executor import ActionExecutor
from .instruction_executor import InstructionExecutor

__all__ = ["ActionExecutor", "InstructionExecutor"]
