"""
Response helper utilities for turning stored documents into response models
"""
from typing import Any, Dict, List, Type
from pydantic import BaseModel


def strip_internal_fields(document: Dict[str, Any]) -> Dict[str, Any]:
    """Drop store bookkeeping keys such as _version"""
    return {key: value for key, value in document.items() if not key.startswith('_')}


def document_to_model(model_class: Type[BaseModel], document: Dict[str, Any]) -> BaseModel:
    return model_class.model_validate(strip_internal_fields(document))


def documents_to_models(model_class: Type[BaseModel], documents: List[Dict[str, Any]]) -> List[BaseModel]:
    return [document_to_model(model_class, document) for document in documents]


def page_to_offset(page: int, limit: int) -> int:
    """Convert the 1-based page query parameter into a row offset"""
    return (page - 1) * limit
