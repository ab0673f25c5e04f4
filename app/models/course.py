from sqlalchemy import Column, Integer, String, Float, DateTime, Enum, Index, Text
from sqlalchemy.sql import func
from app.core.database import Base
from app.core.constants import SkillLevelEnum


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(String, unique=True, index=True, nullable=False)
    title = Column(String(200), index=True, nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String, index=True, nullable=False)
    instructor = Column(String, index=True, nullable=False)
    duration = Column(String, nullable=False)
    price = Column(String, nullable=False)
    rating = Column(Float, nullable=False, default=0.0)
    skill_level = Column(
        Enum(SkillLevelEnum, values_callable=lambda enum: [e.value for e in enum], name="skilllevelenum"),
        index=True,
        nullable=False,
        default=SkillLevelEnum.BEGINNER,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_courses_category_skill_level", "category", "skill_level"),
    )
