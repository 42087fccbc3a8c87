import pytest

from tests.fakes import FakeApiextensionsV1Api, FakeCluster, FakeCoreV1Api


@pytest.fixture
def apiextensions():
    return FakeApiextensionsV1Api()


@pytest.fixture
def core():
    return FakeCoreV1Api()


@pytest.fixture
def cluster(apiextensions, core):
    return FakeCluster(apiextensions_v1=apiextensions, core_v1=core)
