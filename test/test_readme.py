from pathlib import Path

import pytest


root_dir = Path(__file__).parent.parent
readme_path = root_dir / "README.md"


@pytest.mark.xdist_group(name="fast")
def test_usage_doc_in_readme():
    usage_doc_path = root_dir / "aio_featureservice" / "doc" / "usage.md"
    assert usage_doc_path.read_text(encoding="utf-8") in readme_path.read_text(encoding="utf-8")
