from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Any, Optional, Literal

class LabeledCode(BaseModel):
    """Par código/nome retornado pelo classificador (ex.: PHL / Philippines)."""
    model_config = ConfigDict(extra="ignore")

    code: Optional[str] = None
    name: Optional[str] = None

class ClassificationResult(BaseModel):
    """
    Resultado da API de classificação.
    A ausência de um campo significa "não determinado", não erro.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    country: Optional[LabeledCode] = None
    document_type: Optional[LabeledCode] = Field(None, alias="documentType")
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    def matches(self, country_code: str, document_type_code: str) -> bool:
        return (
            self.country is not None
            and self.country.code == country_code
            and self.document_type is not None
            and self.document_type.code == document_type_code
        )

    def describe(self) -> str:
        """Descrição legível do documento detectado, ex.: "Philippines Passport"."""
        country = (self.country.name if self.country else None) or "Unknown Country"
        doc_type = (self.document_type.name if self.document_type else None) or "Unknown Document"
        return f"{country} {doc_type}"

class SubmissionResult(BaseModel):
    """Resposta da submissão para verificação."""
    external_verification_id: str
    status: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

class PollResult(BaseModel):
    """Estado atual de uma verificação em andamento."""
    state: Literal["PROCESSING", "DONE", "FAILED"]
    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.state in ("DONE", "FAILED")
