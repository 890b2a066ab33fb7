"""Shared pydantic base for pixtrain configuration sections.

Every section of ParamConfig (resolution, features, classifier, training,
preprocessing, boundary, overlay, output, logging), CLIConfig and
InternalConfig derive from PixtrainBaseModel. UserConfig relaxes
``extra`` so that user files may carry keys pixtrain does not know.
"""

from pydantic import BaseModel, ConfigDict


class PixtrainBaseModel(BaseModel):
    """Strict base: unknown keys are errors and every assignment is validated.

    Enum-valued fields are stored as their values (``"mean_variance"``, not
    ``Normalization.MEAN_VARIANCE``) so that configs dump to plain JSON for
    the persisted runtime config.
    """

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        use_enum_values=True,
        str_strip_whitespace=True,
    )
