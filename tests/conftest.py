"""
Shared test config
"""
# Standard
from unittest import mock

# Third Party
import pytest

# Local
from backplane.test_helpers.helpers import configure_logging, image_environment

configure_logging()


@pytest.fixture(autouse=True)
def no_local_kubeconfig():
    """This fixture makes sure the tests run as if KUBECONFIG is not exported in
    the environment, even if it is
    """
    with mock.patch(
        "kubernetes.config.new_client_from_config", side_effect=RuntimeError
    ):
        yield


@pytest.fixture(autouse=True)
def operand_images():
    """Every test runs with a default image for every known image key"""
    with image_environment():
        yield
