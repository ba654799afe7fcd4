import pytest

from formula_tags.editor import FormulaEditor


def pytest_configure(config):
    config.option.asyncio_mode = "auto"


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    outcome = yield
    report = outcome.get_result()
    if report.when == "call":
        print(f"TEST: {item.name} - {'PASSED' if report.passed else 'FAILED'}")


@pytest.fixture
def editor():
    return FormulaEditor()


@pytest.fixture
def type_into(editor):
    """Feed buffer changes one by one, committing digit runs with the accept key."""
    def _type(*entries):
        for entry in entries:
            editor.handle_input(entry)
            if editor.buffer:
                editor.handle_accept()
        return editor
    return _type
