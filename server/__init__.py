"""Answer composition on top of hybrid retrieval."""

from .answering import (
    Answer,
    AnswerComposer,
    Citation,
    CompletionError,
    OpenAICompletionProvider
)

__all__ = [
    'Answer',
    'AnswerComposer',
    'Citation',
    'CompletionError',
    'OpenAICompletionProvider'
]
