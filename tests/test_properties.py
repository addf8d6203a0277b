import datetime

from hypothesis import given
from hypothesis import strategies as st

from git_autosync.config import Settings
from git_autosync.git_wrapper import ChangeRecord
from git_autosync.templating import PLACEHOLDERS, format_message

NOW = datetime.datetime(2024, 1, 1, 12, 0, 0)

# Strategy: templates that never contain a recognized placeholder.
plain_templates = st.text().filter(
    lambda s: not any(token in s for token, _ in PLACEHOLDERS)
)

records_strategy = st.lists(
    st.builds(
        ChangeRecord,
        path=st.text(min_size=1).filter(lambda s: "{" not in s),
        change_kind=st.sampled_from(["M", "A", "D", "R", "?"]),
    )
)


@given(template=plain_templates, snapshot=records_strategy)
def test_templates_without_placeholders_are_unchanged(
    template: str, snapshot: list[ChangeRecord]
) -> None:
    """
    Property: A template with no recognized placeholder comes back untouched.
    """
    assert format_message(template, Settings(), snapshot, now=NOW) == template


@given(prefix=plain_templates, suffix=plain_templates, snapshot=records_strategy)
def test_num_files_renders_snapshot_length(
    prefix: str, suffix: str, snapshot: list[ChangeRecord]
) -> None:
    """
    Property: {{numFiles}} expands to the decimal count of status entries.
    """
    message = format_message(
        f"{prefix}{{{{numFiles}}}}{suffix}", Settings(), snapshot, now=NOW
    )
    assert message == f"{prefix}{len(snapshot)}{suffix}"


@given(snapshot=records_strategy)
def test_substitution_order_does_not_matter(snapshot: list[ChangeRecord]) -> None:
    """
    Property: Each placeholder expands the same regardless of its position.
    """
    settings = Settings()
    forward = format_message(
        "{{date}}|{{numFiles}}|{{files}}", settings, snapshot, now=NOW
    )
    backward = format_message(
        "{{files}}|{{numFiles}}|{{date}}", settings, snapshot, now=NOW
    )
    assert forward.split("|", 2)[0] == backward.rsplit("|", 2)[2]
    assert forward.split("|", 2)[1] == backward.rsplit("|", 2)[1]
