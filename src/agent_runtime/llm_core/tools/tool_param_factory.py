import inspect
from typing import Annotated, Any, get_args, get_origin

from pydantic import BaseModel, ConfigDict, Field
from pydantic.fields import FieldInfo

from ..exceptions import ToolValidationError
from ..logger import get_logger

logger = get_logger(__name__)

_UNSUPPORTED_KINDS = (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD, inspect.Parameter.POSITIONAL_ONLY)


class FieldTuple(BaseModel):
    """Typed (annotation, FieldInfo) pair as expected by pydantic's ``create_model``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    annotation: Any
    field: FieldInfo


class ToolParameterFactory:
    """Turns the parameters of a tool function into pydantic field definitions."""

    @classmethod
    def build_field_tuple(cls, param_name: str, param: inspect.Parameter, tool_name: str) -> FieldTuple:
        """Creates the (annotation, FieldInfo) tuple for a single function parameter.

        Args:
            param_name: The name of the parameter.
            param: The inspect.Parameter object.
            tool_name: The name of the tool for error reporting.

        Returns:
            A FieldTuple containing the type annotation and Pydantic Field configuration.

        Raises:
            ToolValidationError: If the parameter cannot be passed by keyword or has no description.
        """
        if param.kind in _UNSUPPORTED_KINDS:
            msg = f"Parameter '{param_name}' in tool '{tool_name}' must be passable by keyword."
            logger.error(msg)
            raise ToolValidationError(msg)

        annotation = param.annotation
        description = cls._extract_description(annotation=annotation, param_name=param_name, tool_name=tool_name)

        pydantic_default = param.default if param.default is not inspect.Parameter.empty else ...

        return FieldTuple(annotation=annotation, field=Field(default=pydantic_default, description=description))

    @staticmethod
    def _extract_description(annotation: Any, param_name: str, tool_name: str) -> str:
        """Every tool parameter needs ``Annotated[<type>, Field(description='...')]`` as its annotation.

        Raises:
            ToolValidationError: If the parameter is missing a Pydantic Field description.
        """
        if get_origin(annotation) is Annotated:
            for metadata in get_args(annotation)[1:]:
                if isinstance(metadata, FieldInfo) and metadata.description:
                    return metadata.description

        msg = (
            f"Parameter '{param_name}' in tool '{tool_name}' is missing a description.\n"
            f"Usage: {param_name}: Annotated[Type, Field(description='...')] = ..."
        )
        logger.error(msg)
        raise ToolValidationError(msg)
