from langgraph.graph import START, END, StateGraph
import logging
import time
from typing import Optional, Tuple
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import SystemMessage, HumanMessage
from langchain_core.output_parsers import JsonOutputParser
from langchain_core.prompts import PromptTemplate
from states import AnalysisFeedbackState, AnalysisFeedback
from prompts import fallback_system_prompt, fallback_user_prompt, exam_criteria, default_criteria
from prompt_manager import PromptManager, count_words
from llm_config import get_llm_model, get_llm_provider_info

logger = logging.getLogger(__name__)

feedback_parser = JsonOutputParser(pydantic_object=AnalysisFeedback)


def build_fallback_prompts(
    exam_name: str,
    skill_name: str,
    part_name: str,
    student_response: str,
    question: Optional[str] = None,
) -> Tuple[str, str]:
    """Static system/user prompts for when no stored template can be used."""
    criteria = exam_criteria.get((exam_name.lower(), skill_name.lower()), default_criteria)

    system_prompt = PromptTemplate(
        template=fallback_system_prompt,
        input_variables=["exam_name", "skill_name", "part_name", "criteria"],
    ).format(exam_name=exam_name, skill_name=skill_name, part_name=part_name, criteria=criteria)

    user_prompt = PromptTemplate(
        template=fallback_user_prompt,
        input_variables=["exam_name", "skill_name", "question", "student_response", "word_count"],
    ).format(
        exam_name=exam_name,
        skill_name=skill_name,
        question=question or "Not provided",
        student_response=student_response,
        word_count=count_words(student_response),
    )
    return system_prompt.strip(), user_prompt.strip()


def assemble_prompt(state: AnalysisFeedbackState, prompt_manager: PromptManager):
    """Compose the analysis prompt from the stored template, or fall back to the static one."""
    exam_name = state['exam_name']
    skill_name = state['skill_name']
    part_name = state['part_name']
    logger.info(f"📝 Assembling analysis prompt for {exam_name}/{skill_name}/{part_name}")

    analysis_prompt = prompt_manager.get_complete_analysis_prompt(
        exam_name,
        skill_name,
        part_name,
        state['student_response'],
        state.get('question'),
    )

    if analysis_prompt:
        return {
            "template_id": analysis_prompt.template_id,
            "system_prompt": analysis_prompt.system_prompt,
            "user_prompt": analysis_prompt.user_prompt,
            "used_fallback": False,
        }

    logger.warning(f"⚠ No stored template for {exam_name}/{skill_name}/{part_name} - using fallback prompt")
    system_prompt, user_prompt = build_fallback_prompts(
        exam_name,
        skill_name,
        part_name,
        state['student_response'],
        state.get('question'),
    )
    return {
        "template_id": None,
        "system_prompt": system_prompt,
        "user_prompt": user_prompt,
        "used_fallback": True,
    }


def generate_feedback(state: AnalysisFeedbackState, model: Optional[BaseChatModel], model_error: Optional[str] = None):
    """Send the prompt to the model and parse the JSON feedback."""
    if model is None:
        logger.error(f"❌ No LLM available for feedback: {model_error}")
        return {
            "feedback": None,
            "success": False,
            "error": f"LLM not configured: {model_error}",
            "processing_time_ms": 0.0,
        }

    messages = [
        SystemMessage(content=state['system_prompt']),
        HumanMessage(content=f"{state['user_prompt']}\n\n{feedback_parser.get_format_instructions()}"),
    ]
    chain = model | feedback_parser

    started = time.perf_counter()
    try:
        result = chain.invoke(messages)
        feedback = AnalysisFeedback.model_validate(result).model_dump()
        success = True
        error = None
        logger.info(f"✓ Feedback generated - overall score: {feedback['overall_score']}")
    except Exception as e:
        logger.error(f"❌ Feedback generation failed: {e}", exc_info=True)
        feedback = None
        success = False
        error = str(e)
    processing_time_ms = (time.perf_counter() - started) * 1000

    return {
        "feedback": feedback,
        "success": success,
        "error": error,
        "processing_time_ms": processing_time_ms,
    }


def record_usage(state: AnalysisFeedbackState, prompt_manager: PromptManager):
    """Report the outcome against the stored template that produced the prompt."""
    template_id = state.get('template_id')
    if template_id is None:
        logger.info("Fallback prompt used - no template usage to record")
        return {"usage_recorded": False}

    prompt_manager.track_prompt_usage(
        template_id,
        state.get('processing_time_ms', 0.0),
        state.get('success', False),
    )
    return {"usage_recorded": True}


def build_analysis_feedback_graph(prompt_manager: PromptManager, model: Optional[BaseChatModel] = None):
    """
    Compile the feedback workflow:
    assemble_prompt -> generate_feedback -> record_usage

    The model defaults to the configured LLM provider. A missing provider or
    API key does not stop the graph from compiling; each run then reports
    success=False with the configuration error.
    """
    model_error = None
    if model is None:
        provider_info = get_llm_provider_info()
        logger.info(f"Using LLM provider for feedback: {provider_info['name']} ({provider_info['provider']})")
        try:
            model = get_llm_model()
        except ValueError as e:
            logger.error(f"❌ LLM provider not configured: {e}")
            model_error = str(e)

    def _assemble_prompt(state: AnalysisFeedbackState):
        return assemble_prompt(state, prompt_manager)

    def _generate_feedback(state: AnalysisFeedbackState):
        return generate_feedback(state, model, model_error)

    def _record_usage(state: AnalysisFeedbackState):
        return record_usage(state, prompt_manager)

    try:
        logger.info("Building analysis feedback graph...")

        builder = StateGraph(AnalysisFeedbackState)

        # Add nodes to the graph
        builder.add_node("assemble_prompt", _assemble_prompt)
        builder.add_node("generate_feedback", _generate_feedback)
        builder.add_node("record_usage", _record_usage)

        # Connect the nodes in the workflow
        builder.add_edge(START, "assemble_prompt")
        builder.add_edge("assemble_prompt", "generate_feedback")
        builder.add_edge("generate_feedback", "record_usage")
        builder.add_edge("record_usage", END)

        graph = builder.compile()
        logger.info("Analysis feedback graph compiled successfully")
        return graph
    except Exception as e:
        logger.error(f"Error building analysis feedback graph: {str(e)}")
        raise
