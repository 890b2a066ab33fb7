from pixtrain.schemas.user import UserConfig
from pixtrain.schemas.cli import CLIConfig
from pixtrain.schemas.param import ParamConfig
from pixtrain.schemas.resolve import resolve_config


def test_cli_overrides_do_not_mutate_user():
    user = UserConfig.model_validate({"CLASSIFIER": "knearest", "BASE_DIR": "/tmp"})

    cli = CLIConfig.model_validate({"classifier": "ann_mlp"})

    internal = resolve_config(ParamConfig(), user, cli)

    # CLI should take precedence
    assert internal.classifier.kind == "ann_mlp"

    # But the original user model should remain unchanged
    assert user.classifier == "knearest"


def test_cli_only_overrides_specified_fields():
    """CLI should only override fields that are explicitly set."""
    user = UserConfig(
        base_dir="/tmp",
        classifier="knearest",
        max_samples=300,
        rng_seed=5,
    )

    # CLI only sets the seed
    cli = CLIConfig(rng_seed=9)

    config = resolve_config(ParamConfig(), user, cli)

    assert config.training.rng_seed == 9  # CLI override
    assert config.training.max_samples == 300  # User value preserved
    assert config.classifier.kind == "knearest"  # User value preserved
    assert config.output.base_dir == "/tmp"


def test_cli_resolution_keeps_user_pixel_size():
    """Picking a resolution on the command line keeps the user's calibration."""
    user = UserConfig(RESOLUTION="Low", PIXEL_SIZE=0.5, PIXEL_UNITS="µm")
    cli = CLIConfig(resolution="High")

    config = resolve_config(ParamConfig(), user, cli)

    assert config.resolution.name == "High"
    assert config.resolution.base_pixel_size == 0.5
    assert config.resolution.units == "µm"


def test_cli_precedence_no_user_config():
    """CLI should work even without UserConfig."""
    cli = CLIConfig(classifier="majority", max_samples=0)

    config = resolve_config(ParamConfig(), None, cli)

    assert config.classifier.kind == "majority"
    assert config.training.max_samples == 0
