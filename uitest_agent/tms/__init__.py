from .sources import ConfigTestCaseSource, ManualTestCaseSource, TestCaseSource

__all__ = ["ConfigTestCaseSource", "ManualTestCaseSource", "TestCaseSource"]
