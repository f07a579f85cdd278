from typing import List, Optional

from pydantic import BaseModel

from pipeline.state import Phase


class AnalyzeRequest(BaseModel):
    image_base64: str
    mime_type: Optional[str] = None


class Source(BaseModel):
    uri: str
    title: str


class LandmarkResult(BaseModel):
    landmark_name: str
    history_text: str
    sources: List[Source]
    has_audio: bool


class StatusResponse(BaseModel):
    phase: Phase
    message: Optional[str] = None
    result: Optional[LandmarkResult] = None
    image: Optional[str] = None  # data: URI of the submitted photo
