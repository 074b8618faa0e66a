import os

os.environ.setdefault("ENV", "test")

pytest_plugins = [
    "tests.fixtures.bridge_fixtures",
    "tests.fixtures.review_fixtures",
]
