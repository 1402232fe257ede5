from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy import func
from sqlmodel import Session, select
from tgquiz.database import get_session
from tgquiz.models import Quiz, Question, Answer
from tgquiz.schemas import (
    QuizSummary, QuizListResponse, QuizOut, QuizDetailResponse,
    QuestionOut, AnswerOut,
)

router = APIRouter(prefix="/api/tests", tags=["tests"])


@router.get("", response_model=QuizListResponse)
def list_tests(session: Session = Depends(get_session)):
    """All quizzes with their question counts, by id."""
    rows = session.exec(
        select(Quiz.id, Quiz.title, Quiz.description, func.count(Question.id))
        .outerjoin(Question, Question.test_id == Quiz.id)
        .group_by(Quiz.id, Quiz.title, Quiz.description)
        .order_by(Quiz.id)
    ).all()
    return QuizListResponse(
        tests=[
            QuizSummary(id=quiz_id, title=title, description=description, question_count=count)
            for quiz_id, title, description, count in rows
        ]
    )


@router.get("/{id}", response_model=QuizDetailResponse)
def get_test(id: int = Path(gt=0), session: Session = Depends(get_session)):
    """Quiz with its ordered questions, each carrying ordered answers.

    ``isCorrect`` is returned for every answer.
    """
    quiz = session.get(Quiz, id)
    if not quiz:
        raise HTTPException(status_code=404, detail="Test not found")

    rows = session.exec(
        select(Question, Answer)
        .outerjoin(Answer, Answer.question_id == Question.id)
        .where(Question.test_id == id)
        .order_by(Question.sort_order, Question.id, Answer.sort_order, Answer.id)
    ).all()

    questions: dict[int, QuestionOut] = {}
    for question, answer in rows:
        if question.id not in questions:
            questions[question.id] = QuestionOut(
                id=question.id, text=question.text, image_url=question.image_url, answers=[]
            )
        if answer is not None:
            questions[question.id].answers.append(
                AnswerOut(id=answer.id, text=answer.text, is_correct=answer.is_correct)
            )

    return QuizDetailResponse(
        test=QuizOut.model_validate(quiz), questions=list(questions.values())
    )
