# --- START OF FILE models.py ---

from datetime import datetime
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Index # Import Index explicitly
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

# Create a db instance to be initialized later
db = SQLAlchemy()

class Student(db.Model):
    """Student model"""
    __tablename__ = 'student'
    id = db.Column(db.Integer, primary_key=True)
    roll_number = db.Column(db.String(20), nullable=False, unique=True, index=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.now)

    marks = db.relationship('StudentMark', backref='student', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'roll_number': self.roll_number,
            'name': self.name,
            'email': self.email,
        }

    def __repr__(self):
        return f"<Student {self.roll_number}: {self.name}>"

class Assessment(db.Model):
    """Assessment model (exam, assignment, quiz, ...)"""
    __tablename__ = 'assessment'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, unique=True, index=True)
    assessment_type = db.Column(db.String(50), nullable=False, default='Exam')
    assessment_date = db.Column(db.Date, nullable=True, index=True)
    max_marks = db.Column(db.Float, nullable=False, default=100.0)
    created_at = db.Column(db.DateTime, default=datetime.now)

    mappings = db.relationship('AssessmentCOMapping', backref='assessment', lazy=True, cascade="all, delete-orphan")
    marks = db.relationship('StudentMark', backref='assessment', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'assessment_type': self.assessment_type,
            'date': self.assessment_date.isoformat() if self.assessment_date else None,
            'max_marks': self.max_marks,
        }

    def __repr__(self):
        return f"<Assessment {self.name} ({self.max_marks})>"

class CourseOutcome(db.Model):
    """CourseOutcome model"""
    __tablename__ = 'course_outcome'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    mappings = db.relationship('AssessmentCOMapping', backref='course_outcome', lazy=True, cascade="all, delete-orphan")
    po_mappings = db.relationship('COPOMapping', backref='course_outcome', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {'id': self.id, 'code': self.code, 'description': self.description}

    def __repr__(self):
        return f"<CourseOutcome {self.code}>"

class BloomLevel(db.Model):
    """Cognitive level of Bloom's taxonomy; level_order drives display order"""
    __tablename__ = 'bloom_level'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False, unique=True, index=True)
    level_order = db.Column(db.Integer, nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)

    mappings = db.relationship('AssessmentCOMapping', backref='bloom_level', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'level_order': self.level_order,
            'description': self.description,
        }

    def __repr__(self):
        return f"<BloomLevel {self.level_order}: {self.name}>"

class ProgramOutcome(db.Model):
    """ProgramOutcome model"""
    __tablename__ = 'program_outcome'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, unique=True, index=True) # Indexed, kept unique
    description = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now)

    co_mappings = db.relationship('COPOMapping', backref='program_outcome', lazy=True, cascade="all, delete-orphan")

    def to_dict(self):
        return {'id': self.id, 'code': self.code, 'description': self.description}

    def __repr__(self):
        return f"<ProgramOutcome {self.code}>"

class AssessmentCOMapping(db.Model):
    """Share of an assessment's marks attributed to one CO x Bloom level cell"""
    __tablename__ = 'assessment_co_mapping'
    id = db.Column(db.Integer, primary_key=True)
    assessment_id = db.Column(db.Integer, db.ForeignKey('assessment.id', ondelete='CASCADE'), nullable=False, index=True)
    co_id = db.Column(db.Integer, db.ForeignKey('course_outcome.id', ondelete='CASCADE'), nullable=False, index=True)
    bloom_level_id = db.Column(db.Integer, db.ForeignKey('bloom_level.id', ondelete='CASCADE'), nullable=False, index=True)
    max_marks = db.Column(db.Float, nullable=False, default=0.0)
    weight = db.Column(db.Float, nullable=False, default=1.0)

    __table_args__ = (
        db.UniqueConstraint('assessment_id', 'co_id', 'bloom_level_id', name='_assessment_co_bloom_uc'),
        # Lookup path used by aggregation and redistribution
        Index('idx_mapping_co_bloom', 'co_id', 'bloom_level_id'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'assessment_id': self.assessment_id,
            'co_id': self.co_id,
            'bloom_level_id': self.bloom_level_id,
            'max_marks': self.max_marks,
            'weight': self.weight,
        }

    def __repr__(self):
        return f"<AssessmentCOMapping A{self.assessment_id} CO{self.co_id} BL{self.bloom_level_id}>"

class StudentMark(db.Model):
    """Raw marks a student obtained on an assessment (one row per pair)"""
    __tablename__ = 'student_mark'
    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('student.id', ondelete='CASCADE'), nullable=False, index=True)
    assessment_id = db.Column(db.Integer, db.ForeignKey('assessment.id', ondelete='CASCADE'), nullable=False, index=True)
    marks_obtained = db.Column(db.Float, nullable=False, default=0.0)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        db.UniqueConstraint('student_id', 'assessment_id', name='_student_assessment_uc'),
        Index('idx_student_mark_student_assessment', 'student_id', 'assessment_id'),
    )

    @classmethod
    def upsert(cls, student_id, assessment_id, marks_obtained):
        """Insert or overwrite the marks for (student, assessment).

        Relies on the unique key so concurrent writers never create duplicate
        rows. Does not commit; the caller owns the transaction.
        """
        now = datetime.now()
        values = {
            'student_id': student_id,
            'assessment_id': assessment_id,
            'marks_obtained': marks_obtained,
            'updated_at': now,
        }
        dialect = db.session.get_bind().dialect.name

        if dialect in ('sqlite', 'postgresql'):
            insert = sqlite_insert if dialect == 'sqlite' else postgresql_insert
            stmt = insert(cls.__table__).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=['student_id', 'assessment_id'],
                set_={'marks_obtained': marks_obtained, 'updated_at': now}
            )
            db.session.execute(stmt)
            return

        existing = cls.query.filter_by(student_id=student_id, assessment_id=assessment_id).first()
        if existing:
            existing.marks_obtained = marks_obtained
            existing.updated_at = now
        else:
            db.session.add(cls(**values))
        db.session.flush()

    def to_dict(self):
        return {
            'id': self.id,
            'student_id': self.student_id,
            'assessment_id': self.assessment_id,
            'marks_obtained': self.marks_obtained,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<StudentMark {self.marks_obtained} for Student {self.student_id} on Assessment {self.assessment_id}>"

class COPOMapping(db.Model):
    """Correlation (1=Low, 2=Medium, 3=High) of a CO towards a PO"""
    __tablename__ = 'co_po_mapping'
    id = db.Column(db.Integer, primary_key=True)
    co_id = db.Column(db.Integer, db.ForeignKey('course_outcome.id', ondelete='CASCADE'), nullable=False, index=True)
    po_id = db.Column(db.Integer, db.ForeignKey('program_outcome.id', ondelete='CASCADE'), nullable=False, index=True)
    correlation_value = db.Column(db.Integer, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('co_id', 'po_id', name='_co_po_uc'),
        db.CheckConstraint('correlation_value BETWEEN 1 AND 3', name='ck_co_po_correlation_range'),
        Index('idx_co_po_combined', 'co_id', 'po_id'),
    )

    def __repr__(self):
        return f"<COPOMapping CO{self.co_id} -> PO{self.po_id} = {self.correlation_value}>"

class Log(db.Model):
    """Log model"""
    __tablename__ = 'log'
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(50), nullable=False, index=True) # Indexed
    description = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime, default=datetime.now, index=True) # Indexed

    def __repr__(self):
        return f"<Log {self.action} at {self.timestamp}>"

# --- END OF FILE models.py ---
