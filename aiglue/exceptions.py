# Copyright (c) Microsoft. All rights reserved.

import logging
from typing import Any, Literal

logger = logging.getLogger("aiglue")


class AIGlueException(Exception):
    """Base exceptions for aiglue.

    Automatically logs the message as debug.
    """

    def __init__(
        self,
        message: str,
        inner_exception: Exception | None = None,
        log_level: Literal[0] | Literal[10] | Literal[20] | Literal[30] | Literal[40] | Literal[50] | None = 10,
        *args: Any,
        **kwargs: Any,
    ):
        """Create an AIGlueException.

        This emits a debug log (by default), with the inner_exception if provided.
        """
        if log_level is not None:
            logger.log(log_level, message, exc_info=inner_exception)
        if inner_exception:
            super().__init__(message, inner_exception, *args)  # type: ignore
            return
        super().__init__(message, *args)  # type: ignore


class ChatClientException(AIGlueException):
    """An error occurred while dealing with a chat client."""

    pass


class ChatClientInitializationError(ChatClientException):
    """An error occurred while initializing the chat client."""

    pass


# region Service Exceptions


class ServiceException(AIGlueException):
    """Base class for all service exceptions."""

    pass


class ServiceInitializationError(ServiceException):
    """An error occurred while initializing the service."""

    pass


class ServiceResponseException(ServiceException):
    """Base class for all service response exceptions."""

    pass


class ServiceInvalidAuthError(ServiceException):
    """An error occurred while authenticating the service."""

    pass


class ServiceInvalidRequestError(ServiceResponseException):
    """An error occurred while validating the request to the service."""

    pass


class ServiceInvalidResponseError(ServiceResponseException):
    """An error occurred while validating the response from the service."""

    pass


# region Memory Exceptions


class MemoryStoreException(AIGlueException):
    """Base class for memory store errors."""

    pass


class MemoryIndexNotFoundError(MemoryStoreException):
    """The requested memory index does not exist."""

    pass


class MemoryRecordError(MemoryStoreException):
    """A memory record could not be encoded or decoded."""

    pass


# region Tool and Prompt Exceptions


class ToolException(AIGlueException):
    """An error occurred while executing a tool."""

    pass


class ToolExecutionException(ToolException):
    """An error occurred while executing a tool."""

    pass


class PromptTemplateException(AIGlueException):
    """An error occurred while creating a prompt template."""

    pass


class PromptRenderingException(PromptTemplateException):
    """An error occurred while rendering a prompt template."""

    pass


class EvaluationException(AIGlueException):
    """An error occurred while evaluating a model response."""

    pass


class SettingNotFoundError(AIGlueException):
    """A required setting could not be resolved."""

    pass
