import pytest

from fakes import Harness, make_image


@pytest.fixture
def harness():
    return Harness()


@pytest.fixture
def jpeg_bytes():
    return make_image()


@pytest.fixture
def png_bytes():
    return make_image(color=(20, 120, 220, 255), format="PNG", mode="RGBA")
