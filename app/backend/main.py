"""
Exam Prompt Service API

Endpoints:
- /catalog/* - Exam, skill and test part lookups
- /prompts/* - Template resolution, composition, calibration data, usage tracking
- /analytics/prompts - Per-template usage report
- /feedback/writing, /feedback/speaking - Analyse a response with the composed prompt
"""

from fastapi import FastAPI, HTTPException, Depends, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from functools import lru_cache
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
import logging
import uvicorn

from config import LOG_LEVEL, LATEST_VERSION, IELTS_EXAM_NAME
from db_helpers import (
    create_supabase_client, get_exam_types, get_skill_types, get_test_parts,
    list_prompt_templates, fetch_template_sections,
)
from analytics_helpers import get_prompt_usage_report
from prompt_manager import PromptManager
from states import (
    AnalysisPrompt, BuiltPrompt, PromptPair, PromptTemplate,
    ScoreBenchmark, ScoringExample, SectionContent,
)
from features.analysis_feedback import build_analysis_feedback_graph

# Configure logging
logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Exam Prompt Service API",
    description="Composes versioned exam-scoring prompts with calibration data and tracks their usage",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify actual origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================
# DEPENDENCIES
# ============================================================

@lru_cache(maxsize=1)
def get_supabase():
    return create_supabase_client()

@lru_cache(maxsize=1)
def get_prompt_manager() -> PromptManager:
    return PromptManager(get_supabase())

@lru_cache(maxsize=1)
def get_feedback_graph():
    return build_analysis_feedback_graph(get_prompt_manager())

# ============================================================
# REQUEST/RESPONSE MODELS
# ============================================================

class BuildPromptRequest(BaseModel):
    variables: Dict[str, Any] = Field(default_factory=dict, description="Runtime values for {key} placeholders")

class AnalysisPromptRequest(BaseModel):
    exam_name: str = Field(..., description="Exam name", examples=["IELTS"])
    skill_name: str = Field(..., description="Skill name", examples=["writing"])
    part_name: str = Field(..., description="Test part name", examples=["task2"])
    student_response: str = Field(..., description="The student's response or transcript")
    question: Optional[str] = Field(None, description="Question the student answered")

class WritingPromptRequest(BaseModel):
    task: str = Field(..., description="IELTS writing task", examples=["task2"])
    text: str = Field(..., min_length=1, description="Essay text")
    question: Optional[str] = None

class SpeakingPromptRequest(BaseModel):
    part: str = Field(..., description="IELTS speaking part", examples=["part1"])
    transcript: str = Field(..., min_length=1, description="Speech transcript")
    question: Optional[str] = None

class UsageRequest(BaseModel):
    processing_time_ms: float = Field(..., ge=0, description="Time spent on the model call, in ms")
    success: bool = Field(..., description="Whether the call produced usable output")

class FeedbackResponse(BaseModel):
    success: bool
    template_id: Optional[int] = None
    used_fallback: bool
    processing_time_ms: Optional[float] = None
    feedback: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

class HealthResponse(BaseModel):
    status: str
    message: str

# ============================================================
# API ENDPOINTS
# ============================================================

@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Exam Prompt Service API",
        "version": "1.0.0",
        "status": "running",
        "features": ["Versioned templates", "Calibration examples", "Usage analytics"]
    }

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        message="Exam Prompt Service is running normally"
    )

# ============================================================
# CATALOG ENDPOINTS
# ============================================================

@app.get("/catalog/exams")
def catalog_exams(client=Depends(get_supabase)):
    return {"exams": get_exam_types(client)}

@app.get("/catalog/skills")
def catalog_skills(client=Depends(get_supabase)):
    return {"skills": get_skill_types(client)}

@app.get("/catalog/parts")
def catalog_parts(
    exam_name: str = Query(...),
    skill_name: str = Query(...),
    client=Depends(get_supabase),
):
    return {"parts": get_test_parts(client, exam_name, skill_name)}

# ============================================================
# PROMPT ENDPOINTS
# ============================================================

@app.get("/prompts/templates")
def list_templates(
    exam_name: str = Query(...),
    skill_name: str = Query(...),
    part_name: Optional[str] = Query(None),
    include_inactive: bool = Query(True),
    client=Depends(get_supabase),
):
    """All template versions for an exam/skill (admin view)."""
    return {"templates": list_prompt_templates(client, exam_name, skill_name, part_name, include_inactive)}

@app.get("/prompts/template", response_model=PromptTemplate)
def resolve_template(
    exam_name: str = Query(...),
    skill_name: str = Query(...),
    part_name: Optional[str] = Query(None),
    version: str = Query(LATEST_VERSION),
    manager: PromptManager = Depends(get_prompt_manager),
):
    """Resolve the active template for an exam/skill/part ('latest' or an exact version)."""
    template = manager.get_prompt_template(exam_name, skill_name, part_name, version)
    if not template:
        raise HTTPException(status_code=404, detail="Prompt template not found")
    return template

@app.get("/prompts/templates/{template_id}/sections", response_model=List[SectionContent])
def template_sections(template_id: int, client=Depends(get_supabase)):
    """Ordered sections of a template, for preview."""
    sections = fetch_template_sections(client, template_id)
    if sections is None:
        raise HTTPException(status_code=404, detail="Prompt sections unavailable")
    return sections

@app.post("/prompts/templates/{template_id}/build", response_model=BuiltPrompt)
def build_template_prompt(
    template_id: int,
    request: BuildPromptRequest,
    manager: PromptManager = Depends(get_prompt_manager),
):
    prompt = manager.build_prompt(template_id, request.variables)
    if not prompt:
        raise HTTPException(status_code=404, detail="Prompt could not be built")
    return prompt

@app.post("/prompts/templates/{template_id}/test", response_model=BuiltPrompt)
def test_template_prompt(
    template_id: int,
    exam_name: str = Query(IELTS_EXAM_NAME),
    skill_name: str = Query("writing"),
    part_name: str = Query(""),
    manager: PromptManager = Depends(get_prompt_manager),
):
    """Build a template with sample values so an admin can check it renders."""
    prompt = manager.build_prompt(template_id, {
        "examName": exam_name,
        "skillName": skill_name,
        "partName": part_name,
        "studentResponse": "Sample student response for testing...",
        "question": "Sample question for testing",
        "wordCount": 150,
    })
    if not prompt:
        raise HTTPException(status_code=404, detail="Prompt could not be built")
    logger.info(f"✓ Test build of template {template_id} succeeded")
    return prompt

@app.get("/prompts/examples", response_model=List[ScoringExample])
def scoring_examples(
    exam_name: str = Query(...),
    skill_name: str = Query(...),
    part_name: Optional[str] = Query(None),
    score_levels: Optional[List[float]] = Query(None),
    manager: PromptManager = Depends(get_prompt_manager),
):
    return manager.get_scoring_examples(exam_name, skill_name, part_name, score_levels)

@app.get("/prompts/benchmarks", response_model=List[ScoreBenchmark])
def score_benchmarks(
    exam_name: str = Query(...),
    skill_name: str = Query(...),
    part_name: Optional[str] = Query(None),
    manager: PromptManager = Depends(get_prompt_manager),
):
    return manager.get_score_benchmarks(exam_name, skill_name, part_name)

@app.post("/prompts/analysis", response_model=AnalysisPrompt)
def analysis_prompt(
    request: AnalysisPromptRequest,
    manager: PromptManager = Depends(get_prompt_manager),
):
    """Complete system/user prompt plus calibration data for a student response."""
    result = manager.get_complete_analysis_prompt(
        request.exam_name,
        request.skill_name,
        request.part_name,
        request.student_response,
        request.question,
    )
    if not result:
        raise HTTPException(status_code=404, detail="No prompt template available for this exam part")
    return result

@app.post("/prompts/writing-analysis", response_model=PromptPair)
def writing_analysis_prompt(
    request: WritingPromptRequest,
    manager: PromptManager = Depends(get_prompt_manager),
):
    result = manager.get_writing_analysis_prompt(request.task, request.text, request.question)
    if not result:
        raise HTTPException(status_code=404, detail="No writing prompt template available")
    return result

@app.post("/prompts/speaking-analysis", response_model=PromptPair)
def speaking_analysis_prompt(
    request: SpeakingPromptRequest,
    manager: PromptManager = Depends(get_prompt_manager),
):
    result = manager.get_speaking_analysis_prompt(request.part, request.transcript, request.question)
    if not result:
        raise HTTPException(status_code=404, detail="No speaking prompt template available")
    return result

@app.post("/prompts/templates/{template_id}/usage", status_code=202)
def track_usage(
    template_id: int,
    request: UsageRequest,
    manager: PromptManager = Depends(get_prompt_manager),
):
    """Record one use of a template. Always accepted; tracking is best-effort."""
    manager.track_prompt_usage(template_id, request.processing_time_ms, request.success)
    return {"success": True, "template_id": template_id}

@app.get("/analytics/prompts")
def prompt_analytics(
    template_id: Optional[int] = Query(None),
    client=Depends(get_supabase),
):
    return get_prompt_usage_report(client, template_id)

# ============================================================
# FEEDBACK ENDPOINTS
# ============================================================

def _run_feedback(graph, skill_name: str, part_name: str, response: str, question: Optional[str]) -> FeedbackResponse:
    logger.info(f"Feedback requested for {IELTS_EXAM_NAME}/{skill_name}/{part_name}")
    result = graph.invoke({
        "exam_name": IELTS_EXAM_NAME,
        "skill_name": skill_name,
        "part_name": part_name,
        "student_response": response,
        "question": question,
    })
    return FeedbackResponse(
        success=result.get("success", False),
        template_id=result.get("template_id"),
        used_fallback=result.get("used_fallback", False),
        processing_time_ms=result.get("processing_time_ms"),
        feedback=result.get("feedback"),
        error=result.get("error"),
    )

@app.post("/feedback/writing", response_model=FeedbackResponse)
def writing_feedback(request: WritingPromptRequest, graph=Depends(get_feedback_graph)):
    return _run_feedback(graph, "writing", request.task, request.text, request.question)

@app.post("/feedback/speaking", response_model=FeedbackResponse)
def speaking_feedback(request: SpeakingPromptRequest, graph=Depends(get_feedback_graph)):
    return _run_feedback(graph, "speaking", request.part, request.transcript, request.question)

# ============================================================
# ERROR HANDLERS
# ============================================================

@app.exception_handler(404)
async def not_found_handler(request, exc):
    return JSONResponse(
        status_code=404,
        content={"success": False, "error": getattr(exc, "detail", None) or "Endpoint not found"}
    )

@app.exception_handler(422)
async def validation_error_handler(request, exc):
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "Validation error", "details": str(exc)}
    )

if __name__ == "__main__":
    logger.info("Starting Exam Prompt Service API...")
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
