import pytest

from pixtrain.pipeline.coordinator import TrainingCoordinator

from helpers.synthetic import BlockingTileSource


@pytest.fixture
def coordinator(hierarchy, image_source, session_config):
    """Synchronous coordinator; events are handled on the test thread."""
    coord = TrainingCoordinator(hierarchy, image_source, session_config)
    yield coord
    coord.close()


@pytest.fixture
def live_config(make_config):
    return make_config(
        RESOLUTION="Full",
        SIGMAS=[1.0],
        FEATURES=["gaussian"],
        CLASSIFIER="rtrees",
        overlay={"tile_size": 32, "max_workers": 2, "live_prediction": True},
        classifier_config={"params": {"n_estimators": 10}},
    )


@pytest.fixture
def live_coordinator(hierarchy, image_source, live_config):
    coord = TrainingCoordinator(hierarchy, image_source, live_config)
    yield coord
    coord.close()


@pytest.fixture
def blocking_source(image_source):
    return BlockingTileSource(image_source)
