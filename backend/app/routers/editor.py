import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.security import require_staff
from app.db.session import get_db
from app.models.user import User
from app.schemas.content import (
    MaterialCreateRequest,
    MaterialUpdateRequest,
    PublishRequest,
    QuestionCreateRequest,
    QuestionUpdateRequest,
    QuizCreateRequest,
    QuizUpdateRequest,
)
from app.services.audit import AuditAction, AuditResource, audit_log
from app.services.content import ContentService
from app.services.presenters import material_dict, question_dict, quiz_summary, topic_summary

router = APIRouter(prefix="/editor", tags=["editor"])


# topics and materials


@router.get("/topics")
def list_topics(db: Session = Depends(get_db), _: User = Depends(require_staff)):
    return {"topics": [topic_summary(t, None) for t in ContentService(db).list_root_topics()]}


@router.get("/topics/{topic_id}/materials")
def list_materials(topic_id: uuid.UUID, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    return {"materials": [material_dict(m, None) for m in ContentService(db).list_materials(topic_id)]}


@router.post("/topics/{topic_id}/materials")
def create_material(
    topic_id: uuid.UUID,
    payload: MaterialCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    material = ContentService(db).create_material(topic_id, payload.model_dump(exclude_unset=True))
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.CREATE,
        resource=AuditResource.MATERIAL,
        resource_id=material.id,
        metadata={"topic_id": str(topic_id), "title": material.title, "type": material.type.value},
    )
    db.commit()
    db.refresh(material)
    return material_dict(material, None)


@router.put("/materials/{material_id}")
def update_material(
    material_id: uuid.UUID,
    payload: MaterialUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    data = payload.model_dump(exclude_unset=True)
    material = ContentService(db).update_material(material_id, data)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.UPDATE,
        resource=AuditResource.MATERIAL,
        resource_id=material.id,
        metadata={"fields": sorted(data.keys())},
    )
    db.commit()
    db.refresh(material)
    return material_dict(material, None)


@router.delete("/topics/{topic_id}/materials/{material_id}")
def delete_material(
    topic_id: uuid.UUID,
    material_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    material = ContentService(db).soft_delete_material(topic_id, material_id)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.DELETE,
        resource=AuditResource.MATERIAL,
        resource_id=material.id,
        metadata={"topic_id": str(topic_id), "title": material.title},
    )
    db.commit()
    return {"ok": True}


@router.post("/materials/{material_id}/publish")
def publish_material(
    material_id: uuid.UUID,
    payload: PublishRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    material = ContentService(db).set_material_published(material_id, payload.published)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.PUBLISH if payload.published else AuditAction.UNPUBLISH,
        resource=AuditResource.MATERIAL,
        resource_id=material.id,
    )
    db.commit()
    db.refresh(material)
    return material_dict(material, None)


# quizzes


@router.get("/topics/{topic_id}/quizzes")
def list_quizzes(topic_id: uuid.UUID, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    return {
        "quizzes": [
            quiz_summary(q, None, question_count=count) for q, count in ContentService(db).list_quizzes(topic_id)
        ]
    }


@router.post("/topics/{topic_id}/quizzes")
def create_quiz(
    topic_id: uuid.UUID,
    payload: QuizCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    quiz = ContentService(db).create_quiz(topic_id, payload.model_dump())
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.CREATE,
        resource=AuditResource.QUIZ,
        resource_id=quiz.id,
        metadata={"topic_id": str(topic_id), "title": quiz.title},
    )
    db.commit()
    db.refresh(quiz)
    return quiz_summary(quiz, None, question_count=0)


@router.put("/topics/{topic_id}/quizzes/{quiz_id}")
def update_quiz(
    topic_id: uuid.UUID,
    quiz_id: uuid.UUID,
    payload: QuizUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    data = payload.model_dump(exclude_unset=True)
    quiz = ContentService(db).update_quiz(topic_id, quiz_id, data)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.UPDATE,
        resource=AuditResource.QUIZ,
        resource_id=quiz.id,
        metadata={"fields": sorted(data.keys())},
    )
    db.commit()
    db.refresh(quiz)
    return quiz_summary(quiz, None)


@router.delete("/topics/{topic_id}/quizzes/{quiz_id}")
def delete_quiz(
    topic_id: uuid.UUID,
    quiz_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    quiz = ContentService(db).soft_delete_quiz(topic_id, quiz_id)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.DELETE,
        resource=AuditResource.QUIZ,
        resource_id=quiz.id,
        metadata={"topic_id": str(topic_id), "title": quiz.title},
    )
    db.commit()
    return {"ok": True}


# questions


@router.get("/quizzes/{quiz_id}/questions")
def list_questions(quiz_id: uuid.UUID, db: Session = Depends(get_db), _: User = Depends(require_staff)):
    return {"questions": [question_dict(q) for q in ContentService(db).list_questions(quiz_id)]}


@router.post("/quizzes/{quiz_id}/questions")
def create_question(
    quiz_id: uuid.UUID,
    payload: QuestionCreateRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    question = ContentService(db).create_question(quiz_id, payload.model_dump())
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.CREATE,
        resource=AuditResource.QUESTION,
        resource_id=question.id,
        metadata={"quiz_id": str(quiz_id), "options": len(payload.options)},
    )
    db.commit()
    db.refresh(question)
    return question_dict(question)


@router.put("/quizzes/{quiz_id}/questions/{question_id}")
def update_question(
    quiz_id: uuid.UUID,
    question_id: uuid.UUID,
    payload: QuestionUpdateRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    data = payload.model_dump(exclude_unset=True)
    question = ContentService(db).update_question(quiz_id, question_id, data)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.UPDATE,
        resource=AuditResource.QUESTION,
        resource_id=question.id,
        metadata={"quiz_id": str(quiz_id), "fields": sorted(data.keys())},
    )
    db.commit()
    db.refresh(question)
    return question_dict(question)


@router.delete("/quizzes/{quiz_id}/questions/{question_id}")
def delete_question(
    quiz_id: uuid.UUID,
    question_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_staff),
):
    ContentService(db).delete_question(quiz_id, question_id)
    audit_log(
        db=db,
        request=request,
        user_id=user.id,
        action=AuditAction.DELETE,
        resource=AuditResource.QUESTION,
        resource_id=question_id,
        metadata={"quiz_id": str(quiz_id)},
    )
    db.commit()
    return {"ok": True}
