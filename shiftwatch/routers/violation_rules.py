from typing import List

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from shiftwatch.database import get_db
from shiftwatch.schemas.violation import (
    ViolationRuleCreate, ViolationRuleResponse, ViolationRuleUpdate
)
from shiftwatch.services.violation_rules import ViolationRuleService

router = APIRouter(prefix="/violation-rules", tags=["violation-rules"])


@router.get("/companies/{company_id}", response_model=List[ViolationRuleResponse])
def list_rules(company_id: int, active_only: bool = False, db: Session = Depends(get_db)):
    return ViolationRuleService(db).list_rules(company_id, active_only=active_only)


@router.post("", response_model=ViolationRuleResponse, status_code=201)
def create_rule(request: ViolationRuleCreate, db: Session = Depends(get_db)):
    return ViolationRuleService(db).create_rule(**request.model_dump())


@router.put("/{rule_id}", response_model=ViolationRuleResponse)
def update_rule(rule_id: int, request: ViolationRuleUpdate, db: Session = Depends(get_db)):
    return ViolationRuleService(db).update_rule(rule_id, request.model_dump(exclude_unset=True))


@router.delete("/{rule_id}", status_code=204)
def delete_rule(rule_id: int, db: Session = Depends(get_db)):
    """Only rules without recorded violations can be deleted; deactivate the rest."""
    ViolationRuleService(db).delete_rule(rule_id)
    return Response(status_code=204)


@router.post("/companies/{company_id}/seed", response_model=List[ViolationRuleResponse], status_code=201)
def seed_default_rules(company_id: int, db: Session = Depends(get_db)):
    return ViolationRuleService(db).seed_default_rules(company_id)
