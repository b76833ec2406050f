from datetime import datetime

from database import db

# Papéis numéricos de usuário
ROLE_ADMIN = 1
ROLE_COORDINATOR = 2
ROLE_TEACHER = 3
ROLE_STUDENT = 4

ROLE_NAMES = {
    ROLE_ADMIN: 'admin',
    ROLE_COORDINATOR: 'coordinator',
    ROLE_TEACHER: 'teacher',
    ROLE_STUDENT: 'student',
}

USER_ACTIVE = 1
USER_AWAITING_APPROVAL = 2

# Tipos de questão
QUESTION_MULTIPLE_CHOICE = 'multipla_escolha'
QUESTION_TRUE_FALSE = 'verdadeiro/falso'
QUESTION_OPEN = 'aberta'
QUESTION_TYPES = (QUESTION_MULTIPLE_CHOICE, QUESTION_TRUE_FALSE, QUESTION_OPEN)
OBJECTIVE_QUESTION_TYPES = (QUESTION_MULTIPLE_CHOICE, QUESTION_TRUE_FALSE)

MATERIAL_ORIGIN_SUBJECT = 1
MATERIAL_ORIGIN_CLASS = 2


def _iso(value):
    return value.isoformat() if value else None


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Course(db.Model):
    __tablename__ = 'course_valid'

    id = db.Column(db.Integer, primary_key=True)
    code_ies = db.Column(db.Integer, nullable=False)
    acronym_ies = db.Column(db.String(200), nullable=False)
    name_ies = db.Column(db.String(255), nullable=False)
    situation = db.Column(db.String(100), nullable=False)
    course_code = db.Column(db.Integer, nullable=False, unique=True)  # Código de acesso do curso
    name = db.Column(db.String(200), nullable=False)
    degree = db.Column(db.String(100), nullable=False)
    city = db.Column(db.String(150), nullable=False)
    uf = db.Column(db.String(3), nullable=False)

    subjects = db.relationship('Subject', backref='course', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'code_ies': self.code_ies,
            'acronym_ies': self.acronym_ies,
            'name_ies': self.name_ies,
            'situation': self.situation,
            'course_code': self.course_code,
            'name': self.name,
            'degree': self.degree,
            'city': self.city,
            'uf': self.uf
        }


class User(TimestampMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(100), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    registration = db.Column(db.String(255), unique=True)
    photo = db.Column(db.String(200))
    role = db.Column(db.Integer, nullable=False, default=ROLE_STUDENT)
    status = db.Column(db.Integer, default=USER_ACTIVE)
    institution = db.Column(db.String(255))
    course_id = db.Column(db.Integer, db.ForeignKey('course_valid.id', ondelete='SET NULL'))

    course = db.relationship('Course', backref='users')

    def session_dict(self):
        """Dados mínimos guardados na sessão do frontend"""
        return {
            'id': self.id,
            'name': self.username,
            'role': self.role
        }

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'registration': self.registration,
            'photo': self.photo,
            'role': self.role,
            'role_name': ROLE_NAMES.get(self.role),
            'status': self.status,
            'institution': self.institution,
            'course_id': self.course_id,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class ProfessionalRequest(TimestampMixin, db.Model):
    """Solicitação de validação de professor/coordenador (diploma + código do curso)"""
    __tablename__ = 'validate_professionals'

    id = db.Column(db.Integer, primary_key=True)
    professional_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    institution = db.Column(db.String(255), nullable=False)
    access_code = db.Column(db.String(200), nullable=False)
    diploma = db.Column(db.String(150))
    role = db.Column(db.Integer, nullable=False)
    approved = db.Column(db.Boolean, default=False)

    professional = db.relationship(
        'User', backref=db.backref('professional_requests', cascade='all, delete-orphan', passive_deletes=True)
    )

    def to_dict(self):
        return {
            'id': self.id,
            'professional_id': self.professional_id,
            'username': self.professional.username if self.professional else None,
            'email': self.professional.email if self.professional else None,
            'institution': self.institution,
            'access_code': self.access_code,
            'diploma': self.diploma,
            'role': self.role,
            'approved': self.approved,
            'created_at': _iso(self.created_at)
        }


class Subject(TimestampMixin, db.Model):
    __tablename__ = 'subjects'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    professional_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey('course_valid.id', ondelete='CASCADE'), nullable=False)

    professional = db.relationship('User', backref='subjects')
    classes = db.relationship('Class', backref='subject', lazy=True, cascade='all, delete-orphan')
    materials = db.relationship('Material', backref='subject', lazy=True, cascade='all, delete-orphan')
    forms = db.relationship('Form', backref='subject', lazy=True, cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'professional_id': self.professional_id,
            'professor_name': self.professional.username if self.professional else None,
            'course_id': self.course_id,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }


class ClassStudent(TimestampMixin, db.Model):
    __tablename__ = 'class_student'

    class_id = db.Column(db.Integer, db.ForeignKey('classes.id', ondelete='CASCADE'), primary_key=True)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)

    student = db.relationship('User')

    def to_dict(self):
        return {
            'class_id': self.class_id,
            'student_id': self.student_id,
            'enrolled_at': _iso(self.created_at)
        }


class Class(TimestampMixin, db.Model):
    __tablename__ = 'classes'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    period = db.Column(db.String(20), nullable=False)
    capacity = db.Column(db.Integer, nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id', ondelete='CASCADE'), nullable=False)
    course_id = db.Column(db.Integer, db.ForeignKey('course_valid.id', ondelete='CASCADE'), nullable=False)
    expired = db.Column(db.DateTime)

    enrollments = db.relationship('ClassStudent', backref='class_ref', lazy=True, cascade='all, delete-orphan')
    invites = db.relationship('ClassInvite', backref='class_ref', lazy=True, cascade='all, delete-orphan')

    @property
    def student_count(self):
        return len(self.enrollments)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'period': self.period,
            'capacity': self.capacity,
            'subject_id': self.subject_id,
            'subject_name': self.subject.name if self.subject else None,
            'course_id': self.course_id,
            'expired': _iso(self.expired),
            'student_count': self.student_count,
            'created_at': _iso(self.created_at)
        }


class ClassInvite(TimestampMixin, db.Model):
    __tablename__ = 'classes_invites'

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(10), nullable=False, unique=True)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id', ondelete='CASCADE'), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    max_uses = db.Column(db.Integer)  # None = sem limite
    use_count = db.Column(db.Integer, default=0)

    def is_valid(self, now=None):
        now = now or datetime.utcnow()
        if self.expires_at <= now:
            return False
        return self.max_uses is None or (self.use_count or 0) < self.max_uses

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'class_id': self.class_id,
            'expires_at': _iso(self.expires_at),
            'max_uses': self.max_uses,
            'use_count': self.use_count or 0
        }


class Material(TimestampMixin, db.Model):
    __tablename__ = 'materials'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    type = db.Column(db.String(50), nullable=False)
    archive = db.Column(db.String(255), nullable=False)  # Caminho relativo ao UPLOAD_FOLDER
    file_type = db.Column(db.String(50))
    size = db.Column(db.String(20))
    created_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id', ondelete='CASCADE'), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id', ondelete='CASCADE'))
    origin = db.Column(db.Integer, default=MATERIAL_ORIGIN_SUBJECT)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'type': self.type,
            'archive': self.archive,
            'file_type': self.file_type,
            'size': self.size,
            'created_by': self.created_by,
            'subject_id': self.subject_id,
            'class_id': self.class_id,
            'origin': self.origin,
            'created_at': _iso(self.created_at)
        }


class Form(TimestampMixin, db.Model):
    """Simulado: formulário cronometrado com questões"""
    __tablename__ = 'form'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(150), nullable=False)
    description = db.Column(db.String(255))
    created_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    subject_id = db.Column(db.Integer, db.ForeignKey('subjects.id', ondelete='CASCADE'), nullable=False)
    class_id = db.Column(db.Integer, db.ForeignKey('classes.id', ondelete='CASCADE'), nullable=False)
    total_duration = db.Column(db.Integer, nullable=False, default=0)  # Minutos, 0 = sem limite
    deadline = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(50), default='published')  # published, finished

    questions = db.relationship(
        'Question', backref='form', lazy=True, cascade='all, delete-orphan',
        order_by='Question.order_number'
    )
    answers = db.relationship('FormAnswer', backref='form', lazy=True, cascade='all, delete-orphan')
    results = db.relationship('FormResult', backref='form', lazy=True, cascade='all, delete-orphan')
    class_ref = db.relationship('Class', backref=db.backref('forms', cascade='all, delete-orphan'))

    @property
    def total_points(self):
        return sum(float(q.points or 0) for q in self.questions)

    @property
    def duration_seconds(self):
        return (self.total_duration or 0) * 60

    def to_dict(self, include_questions=False, show_correct=False):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'created_by': self.created_by,
            'subject_id': self.subject_id,
            'subject_name': self.subject.name if self.subject else None,
            'class_id': self.class_id,
            'total_duration': self.total_duration,
            'duration_seconds': self.duration_seconds,
            'deadline': _iso(self.deadline),
            'status': self.status,
            'total_points': self.total_points,
            'question_count': len(self.questions),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at)
        }
        if include_questions:
            data['questions'] = [q.to_dict(show_correct=show_correct) for q in self.questions]
        return data


class Question(db.Model):
    __tablename__ = 'questions'

    id = db.Column(db.Integer, primary_key=True)
    form_id = db.Column(db.Integer, db.ForeignKey('form.id', ondelete='CASCADE'), nullable=False)
    text = db.Column(db.Text, nullable=False)
    points = db.Column(db.Numeric(5, 2), default=0)
    type = db.Column(db.String(30), nullable=False)
    order_number = db.Column(db.Integer, nullable=False, default=1)

    options = db.relationship(
        'Option', backref='question', lazy=True, cascade='all, delete-orphan',
        order_by='Option.id'
    )

    @property
    def is_objective(self):
        return self.type in OBJECTIVE_QUESTION_TYPES

    def to_dict(self, show_correct=False):
        return {
            'id': self.id,
            'form_id': self.form_id,
            'text': self.text,
            'points': float(self.points or 0),
            'type': self.type,
            'order_number': self.order_number,
            'options': [opt.to_dict(show_correct=show_correct) for opt in self.options]
        }


class Option(db.Model):
    __tablename__ = 'options'

    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False)
    text = db.Column(db.String(255), nullable=False)
    correct = db.Column(db.Boolean, default=False)

    def to_dict(self, show_correct=False):
        data = {
            'id': self.id,
            'question_id': self.question_id,
            'text': self.text
        }
        # O gabarito só é exposto para quem corrige
        if show_correct:
            data['correct'] = bool(self.correct)
        return data


class FormAnswer(TimestampMixin, db.Model):
    __tablename__ = 'answers_form'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    form_id = db.Column(db.Integer, db.ForeignKey('form.id', ondelete='CASCADE'), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False)
    option_id = db.Column(db.Integer, db.ForeignKey('options.id', ondelete='CASCADE'))
    open_answer = db.Column(db.Text)
    corrected = db.Column(db.Boolean, default=False)
    points_awarded = db.Column(db.Numeric(5, 2))

    user = db.relationship('User')
    question = db.relationship('Question')
    comments = db.relationship('AnswerComment', backref='answer', lazy=True, cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'form_id': self.form_id,
            'question_id': self.question_id,
            'option_id': self.option_id,
            'open_answer': self.open_answer,
            'corrected': bool(self.corrected),
            'points_awarded': float(self.points_awarded) if self.points_awarded is not None else None,
            'comments': [comment.to_dict() for comment in self.comments],
            'created_at': _iso(self.created_at)
        }


class AnswerComment(TimestampMixin, db.Model):
    __tablename__ = 'comment_answers'

    id = db.Column(db.Integer, primary_key=True)
    answer_id = db.Column(db.Integer, db.ForeignKey('answers_form.id', ondelete='CASCADE'), nullable=False)
    teacher_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    comment = db.Column(db.Text)

    def to_dict(self):
        return {
            'id': self.id,
            'answer_id': self.answer_id,
            'teacher_id': self.teacher_id,
            'comment': self.comment,
            'created_at': _iso(self.created_at)
        }


class FormResult(TimestampMixin, db.Model):
    """Tentativa de um aluno em um simulado e seu resultado agregado"""
    __tablename__ = 'results_form'

    id = db.Column(db.Integer, primary_key=True)
    form_id = db.Column(db.Integer, db.ForeignKey('form.id', ondelete='CASCADE'), nullable=False)
    student_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    status = db.Column(db.String(50), default='in_progress')  # in_progress, completed
    started_at = db.Column(db.DateTime)
    submitted_at = db.Column(db.DateTime)
    points = db.Column(db.Numeric(7, 2), default=0)
    max_points = db.Column(db.Numeric(7, 2), default=0)
    correct = db.Column(db.Integer, default=0)
    wrong = db.Column(db.Integer, default=0)
    percent_correct = db.Column(db.Numeric(5, 2), default=0)
    corrected = db.Column(db.Boolean, default=False)  # Todas as abertas corrigidas

    __table_args__ = (db.UniqueConstraint('form_id', 'student_id', name='uq_results_form_student'),)

    student = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'form_id': self.form_id,
            'form_title': self.form.title if self.form else None,
            'student_id': self.student_id,
            'student_name': self.student.username if self.student else None,
            'status': self.status,
            'started_at': _iso(self.started_at),
            'submitted_at': _iso(self.submitted_at),
            'points': float(self.points or 0),
            'max_points': float(self.max_points or 0),
            'correct': self.correct or 0,
            'wrong': self.wrong or 0,
            'percent_correct': float(self.percent_correct or 0),
            'corrected': bool(self.corrected)
        }


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    type = db.Column(db.String(50), nullable=False)  # account_approved, account_rejected, result_available, correction_done
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON)
    is_read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    read_at = db.Column(db.DateTime)

    user = db.relationship('User', backref=db.backref('notifications', cascade='all, delete-orphan'))

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'data': self.data,
            'is_read': self.is_read,
            'created_at': _iso(self.created_at),
            'read_at': _iso(self.read_at)
        }
