import logging
import os
import secrets
import string
from datetime import datetime, timedelta

from flask import current_app, jsonify, request, send_from_directory
from flask_jwt_extended import (create_access_token, current_user, jwt_required,
                                set_access_cookies, unset_jwt_cookies)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

import performance
from database import db
from decorators import on_form_access, role_required, smart_update_expired_forms
from models import (MATERIAL_ORIGIN_CLASS, MATERIAL_ORIGIN_SUBJECT, QUESTION_OPEN,
                    ROLE_ADMIN, ROLE_COORDINATOR, ROLE_STUDENT, ROLE_TEACHER,
                    USER_ACTIVE, USER_AWAITING_APPROVAL, AnswerComment, Class,
                    ClassInvite, ClassStudent, Course, Form, FormAnswer, FormResult,
                    Material, Notification, Option, ProfessionalRequest, Question,
                    Subject, User)
from scoring import can_submit, rescore_result, score_submission, time_left_seconds
from uploads import UploadError, remove_upload, save_upload
from validators import (is_positive_int, parse_datetime, validate_form_payload,
                        validate_material_fields, validate_user_fields)

logger = logging.getLogger(__name__)

MANAGERS = (ROLE_ADMIN, ROLE_COORDINATOR)
STAFF = (ROLE_ADMIN, ROLE_COORDINATOR, ROLE_TEACHER)
INVITE_ALPHABET = string.ascii_uppercase + string.digits


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def error_response(message, status_code, **extra):
    payload = {'status': False, 'message': message}
    payload.update(extra)
    return jsonify(payload), status_code


def database_error(e, action):
    """Desfaz a transação e responde 500 para falhas de banco"""
    db.session.rollback()
    logger.error(f"Erro ao {action}: {e}")
    return error_response('Erro interno no servidor.', 500)


def json_body():
    """Corpo JSON da requisição; qualquer coisa que não seja um objeto vira {}"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def request_data():
    """Corpo da requisição vindo de JSON ou de multipart/form-data"""
    if request.is_json:
        return json_body()
    return request.form.to_dict()


def text_field(data, key, lower=False):
    """Texto sem espaços nas pontas; valores de outro tipo seguem intactos para a validação"""
    value = data.get(key)
    if isinstance(value, str):
        value = value.strip()
        if lower:
            value = value.lower()
    return value


def session_response(user, message, status_code=200):
    """Cria a sessão (token JWT no corpo e em cookie HttpOnly)"""
    access_token = create_access_token(identity=user)
    response = jsonify({
        'status': True,
        'message': message,
        'token': access_token,
        'user': user.session_dict()
    })
    set_access_cookies(response, access_token)
    return response, status_code


def generate_registration():
    """Matrícula numérica de 8 dígitos, única"""
    while True:
        code = ''.join(secrets.choice(string.digits) for _ in range(8))
        if not User.query.filter_by(registration=code).first():
            return code


def generate_invite_code(length=8):
    while True:
        code = ''.join(secrets.choice(INVITE_ALPHABET) for _ in range(length))
        if not ClassInvite.query.filter_by(code=code).first():
            return code


def pagination_args():
    config = current_app.config
    page = max(request.args.get('page', 1, type=int) or 1, 1)
    per_page = request.args.get('per_page', config['DEFAULT_PAGE_SIZE'], type=int) or config['DEFAULT_PAGE_SIZE']
    return page, max(1, min(per_page, config['MAX_PAGE_SIZE']))


def paginated_response(query, key):
    page, per_page = pagination_args()
    page_obj = query.paginate(page=page, per_page=per_page, error_out=False)
    return jsonify({
        'status': True,
        key: [item.to_dict() for item in page_obj.items],
        'pagination': {
            'page': page_obj.page,
            'per_page': page_obj.per_page,
            'total': page_obj.total,
            'pages': page_obj.pages
        }
    }), 200


def search_term():
    term = (request.args.get('search') or '').strip()
    return f"%{term}%" if term else None


def can_manage_subject(user, subject):
    if subject is None:
        return False
    if user.role == ROLE_ADMIN:
        return True
    if user.role == ROLE_COORDINATOR:
        return user.course_id is not None and subject.course_id == user.course_id
    if user.role == ROLE_TEACHER:
        return subject.professional_id == user.id
    return False


def can_manage_class(user, class_obj):
    return can_manage_subject(user, class_obj.subject)


def can_manage_form(user, form):
    if user.role == ROLE_TEACHER and form.created_by == user.id:
        return True
    return can_manage_subject(user, form.subject)


def in_coordinator_scope(user, target_user):
    """Coordenadores só administram usuários do próprio curso"""
    if user.role == ROLE_ADMIN:
        return True
    return user.course_id is not None and target_user.course_id == user.course_id


def is_enrolled(student_id, class_id):
    return db.session.get(ClassStudent, (class_id, student_id)) is not None


def student_class_ids(student_id):
    return [row.class_id for row in ClassStudent.query.filter_by(student_id=student_id).all()]


def pending_forms_for_student(student_id, now=None):
    """Simulados das turmas do aluno, dentro do prazo e ainda não entregues"""
    now = now or datetime.utcnow()
    class_ids = student_class_ids(student_id)
    if not class_ids:
        return []

    completed = db.session.query(FormResult.form_id).filter(
        FormResult.student_id == student_id,
        FormResult.status == 'completed'
    )
    return Form.query.filter(
        Form.class_id.in_(class_ids),
        Form.deadline > now,
        ~Form.id.in_(completed)
    ).order_by(Form.deadline.asc()).all()


def student_summary(user):
    return {
        'id': user.id,
        'username': user.username,
        'email': user.email,
        'registration': user.registration,
        'photo': user.photo
    }


def create_notification(user_id, notification_type, title, message, data=None):
    """Adiciona uma notificação à sessão; o commit fica a cargo de quem chamou"""
    notification = Notification(
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        data=data
    )
    db.session.add(notification)
    return notification


def notify_account_reviewed(user, approved):
    if approved:
        create_notification(
            user.id, 'account_approved', 'Conta aprovada',
            f"Olá {user.username}, sua conta profissional foi aprovada. Bem-vindo ao Evolvere!"
        )
    else:
        create_notification(
            user.id, 'account_rejected', 'Conta não aprovada',
            f"Olá {user.username}, sua solicitação de conta profissional não foi aprovada."
        )


def notify_result_available(result):
    pending = '' if result.corrected else ' As questões abertas ainda serão corrigidas pelo professor.'
    create_notification(
        result.student_id, 'result_available', 'Resultado disponível',
        f"Seu resultado no simulado '{result.form.title}' está disponível: "
        f"{float(result.percent_correct):.1f}% de acertos.{pending}",
        {'form_id': result.form_id, 'result_id': result.id}
    )


def notify_correction_done(result):
    create_notification(
        result.student_id, 'correction_done', 'Correção concluída',
        f"O professor concluiu a correção do simulado '{result.form.title}'. "
        f"Pontuação final: {float(result.points):.2f}/{float(result.max_points):.2f}.",
        {'form_id': result.form_id, 'result_id': result.id}
    )


def result_breakdown(form, result):
    """Resultado do aluno questão a questão (gabarito revelado após a entrega)"""
    rows = FormAnswer.query.filter_by(form_id=form.id, user_id=result.student_id).all()
    rows_by_question = {row.question_id: row for row in rows}
    answers = {row.question_id: {'option_id': row.option_id, 'open_answer': row.open_answer} for row in rows}
    details = {item['question_id']: item for item in score_submission(form.questions, answers)['details']}

    questions = []
    for question in form.questions:
        item = question.to_dict(show_correct=True)
        item.update(details.get(question.id, {}))
        row = rows_by_question.get(question.id)
        if row and question.type == QUESTION_OPEN:
            item['corrected'] = bool(row.corrected)
            item['points_earned'] = float(row.points_awarded) if row.corrected and row.points_awarded is not None else None
            item['comments'] = [comment.to_dict() for comment in row.comments]
        questions.append(item)
    return questions


def register_routes(app):

    # -----------------------------------------------------------------------
    # Autenticação e sessão
    # -----------------------------------------------------------------------
    @app.route('/login', methods=['POST'])
    def login():
        data = json_body()
        email = text_field(data, 'email', lower=True)
        password = data.get('password')

        error = validate_user_fields({'email': email, 'password': password})
        if error:
            return error_response(error, 422)

        user = User.query.filter_by(email=email).first()
        if not user:
            return error_response('Email não encontrado.', 404)

        if not check_password_hash(user.password_hash, password):
            logger.warning(f"Senha incorreta para o usuário {user.id}")
            return error_response('Senha incorreta', 422)

        logger.info(f"Login do usuário {user.id} (papel {user.role})")
        return session_response(user, 'Login realizado com sucesso.')

    @app.route('/user/register', methods=['POST'])
    def register():
        data = json_body()
        fields = {
            'username': text_field(data, 'username'),
            'email': text_field(data, 'email', lower=True),
            'password': data.get('password'),
            'confirm_password': data.get('confirm_password')
        }

        error = validate_user_fields(fields)
        if error:
            return error_response(error, 422)

        if User.query.filter_by(email=fields['email']).first():
            return error_response('Email já existe.', 422)

        try:
            user = User(
                username=fields['username'],
                email=fields['email'],
                password_hash=generate_password_hash(fields['password']),
                registration=generate_registration(),
                role=ROLE_STUDENT,
                status=USER_ACTIVE
            )
            db.session.add(user)
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'cadastrar usuário')

        logger.info(f"Usuário {user.id} cadastrado com matrícula {user.registration}")
        return session_response(user, 'Dados salvo com sucesso.', 201)

    @app.route('/user/logout', methods=['POST'])
    def logout():
        response = jsonify({'status': True, 'message': 'Logout feito com sucesso'})
        unset_jwt_cookies(response)
        return response, 200

    @app.route('/user/session', methods=['GET'])
    @jwt_required()
    def get_session():
        return jsonify({'status': True, 'user': current_user.session_dict()}), 200

    @app.route('/user/me', methods=['GET'])
    @jwt_required()
    def get_current_user():
        return jsonify({'status': True, 'user': current_user.to_dict()}), 200

    # -----------------------------------------------------------------------
    # Usuários e perfil
    # -----------------------------------------------------------------------
    @app.route('/user/<int:user_id>', methods=['GET'])
    @jwt_required()
    def get_user(user_id):
        user = db.get_or_404(User, user_id)
        if current_user.id != user.id and current_user.role not in MANAGERS:
            return error_response('Acesso negado.', 403)
        return jsonify({'status': True, 'user': user.to_dict()}), 200

    @app.route('/user/<int:user_id>', methods=['PATCH'])
    @jwt_required()
    def edit_user(user_id):
        user = db.get_or_404(User, user_id)
        if current_user.id != user.id:
            return error_response('Você só pode editar o próprio perfil.', 403)

        data = json_body()
        changed = False

        username = text_field(data, 'username')
        if username and username != user.username:
            error = validate_user_fields({'username': username})
            if error:
                return error_response(error, 422)
            user.username = username
            changed = True

        email = text_field(data, 'email', lower=True)
        if email and email != user.email:
            error = validate_user_fields({'email': email})
            if error:
                return error_response(error, 422)
            if User.query.filter(User.email == email, User.id != user.id).first():
                return error_response('Email já existe', 422)
            user.email = email
            changed = True

        current_password = data.get('current_password')
        password = data.get('password')
        confirm_password = data.get('confirm_password')
        if current_password or password or confirm_password:
            if not (current_password and password and confirm_password):
                return error_response('Para alterar a senha, preencha todos os campos de senha.', 422)
            if not isinstance(current_password, str) or not check_password_hash(user.password_hash, current_password):
                return error_response('Senha atual incorreta.', 422)
            error = validate_user_fields({'password': password, 'confirm_password': confirm_password})
            if error:
                return error_response(error, 422)
            user.password_hash = generate_password_hash(password)
            changed = True

        if not changed:
            db.session.rollback()
            return error_response('Nenhuma alteração foi feita.', 400)

        try:
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'atualizar usuário')

        return jsonify({'status': True, 'message': 'Usuário atualizado com sucesso.', 'user': user.to_dict()}), 200

    @app.route('/user/<int:user_id>/photo', methods=['PATCH'])
    @jwt_required()
    def edit_photo(user_id):
        user = db.get_or_404(User, user_id)
        if current_user.id != user.id:
            return error_response('Você só pode alterar a própria foto.', 403)

        if 'photo' not in request.files:
            return error_response('O upload de uma imagem é obrigatório.', 400)

        try:
            photo_path, _ = save_upload(request.files['photo'], 'images')
        except UploadError as e:
            return error_response(str(e), 400)

        previous = user.photo
        try:
            user.photo = photo_path
            db.session.commit()
        except SQLAlchemyError as e:
            remove_upload(photo_path)
            return database_error(e, 'atualizar a foto do usuário')

        remove_upload(previous)
        return jsonify({'status': True, 'message': 'Foto atualizada com sucesso.', 'photo': user.photo}), 200

    @app.route('/user/<int:user_id>/photo', methods=['GET'])
    @jwt_required()
    def find_photo(user_id):
        user = db.get_or_404(User, user_id)
        if not user.photo:
            return error_response('Foto não encontrada', 404)
        return jsonify({'status': True, 'photo': user.photo}), 200

    @app.route('/user/<int:user_id>/photo', methods=['DELETE'])
    @jwt_required()
    def remove_photo(user_id):
        user = db.get_or_404(User, user_id)
        if current_user.id != user.id:
            return error_response('Você só pode remover a própria foto.', 403)
        if not user.photo:
            return error_response('Foto não encontrada', 404)

        previous = user.photo
        try:
            user.photo = None
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'remover foto')

        remove_upload(previous)
        return jsonify({'status': True, 'message': 'Foto removida com sucesso', 'photo': None}), 200

    @app.route('/users/students', methods=['GET'])
    @role_required(*MANAGERS)
    def list_students():
        query = User.query.filter(User.role == ROLE_STUDENT)
        if current_user.role == ROLE_COORDINATOR:
            query = query.filter(User.course_id == current_user.course_id)

        term = search_term()
        if term:
            query = query.filter(db.or_(
                User.username.ilike(term),
                User.email.ilike(term),
                User.registration.ilike(term)
            ))

        return paginated_response(query.order_by(User.username.asc()), 'data')

    @app.route('/users/students/<int:student_id>', methods=['DELETE'])
    @role_required(*MANAGERS)
    def delete_student(student_id):
        student = db.session.get(User, student_id)
        if not student or student.role != ROLE_STUDENT:
            return error_response('Aluno não encontrado.', 404)
        if not in_coordinator_scope(current_user, student):
            return error_response('Aluno pertence a outro curso.', 403)

        photo = student.photo
        try:
            ClassStudent.query.filter_by(student_id=student.id).delete()
            FormAnswer.query.filter_by(user_id=student.id).delete()
            FormResult.query.filter_by(student_id=student.id).delete()
            db.session.delete(student)
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'apagar aluno')

        remove_upload(photo)
        logger.info(f"Aluno {student_id} removido pelo usuário {current_user.id}")
        return jsonify({'status': True, 'message': 'Aluno apagado com sucesso.'}), 200

    # -----------------------------------------------------------------------
    # Configuração de conta e validação de profissionais
    # -----------------------------------------------------------------------
    @app.route('/user/account', methods=['POST'])
    @jwt_required()
    def configure_account():
        data = request_data()
        institution = text_field(data, 'institution')
        access_code = str(data.get('access_code') or '').strip()

        try:
            role = int(data.get('role'))
        except (TypeError, ValueError):
            role = None
        if role not in (ROLE_COORDINATOR, ROLE_TEACHER, ROLE_STUDENT):
            return error_response('Perfil inválido.', 422)
        if not isinstance(institution, str) or not institution or not access_code:
            return error_response('Instituição e código de acesso são obrigatórios.', 422)

        course = Course.query.filter_by(course_code=int(access_code)).first() if access_code.isdigit() else None
        if not course:
            return error_response('Nenhum curso encontrado com esse código', 404)

        user = current_user
        already_configured = (
            user.course_id is not None if role == ROLE_STUDENT
            else ProfessionalRequest.query.filter_by(professional_id=user.id).first() is not None
        )
        if already_configured or user.role in MANAGERS:
            return error_response('A configuração desta conta já foi realizada.', 422)

        if role == ROLE_STUDENT:
            try:
                user.institution = institution
                user.course_id = course.id
                db.session.commit()
            except SQLAlchemyError as e:
                return database_error(e, 'atualizar dados do aluno')
            return jsonify({'status': True, 'message': 'Conta configurada com sucesso.'}), 200

        if 'diploma' not in request.files:
            return error_response('O upload de um PDF (diploma) é obrigatório para este perfil.', 400)
        try:
            diploma_path, _ = save_upload(request.files['diploma'], 'diplomas')
        except UploadError as e:
            return error_response(str(e), 400)

        try:
            db.session.add(ProfessionalRequest(
                professional_id=user.id,
                institution=institution,
                access_code=access_code,
                diploma=diploma_path,
                role=role
            ))
            user.institution = institution
            user.course_id = course.id
            user.status = USER_AWAITING_APPROVAL
            db.session.commit()
        except SQLAlchemyError as e:
            remove_upload(diploma_path)
            return database_error(e, 'cadastrar conta profissional')

        logger.info(f"Solicitação profissional do usuário {user.id} para o papel {role}")
        return jsonify({'status': True, 'message': 'Conta configurada com sucesso.'}), 200

    def _pending_request_for(user_id):
        return ProfessionalRequest.query.filter_by(professional_id=user_id, approved=False).first()

    def _can_review(professional_request):
        if not in_coordinator_scope(current_user, professional_request.professional):
            return False
        # Apenas administradores aprovam coordenadores
        return professional_request.role != ROLE_COORDINATOR or current_user.role == ROLE_ADMIN

    @app.route('/user/requests', methods=['GET'])
    @role_required(*MANAGERS)
    def list_requests():
        query = ProfessionalRequest.query.filter_by(approved=False)
        if current_user.role == ROLE_COORDINATOR:
            query = query.join(User, ProfessionalRequest.professional_id == User.id)\
                .filter(User.course_id == current_user.course_id,
                        ProfessionalRequest.role == ROLE_TEACHER)
        requests_ = query.order_by(ProfessionalRequest.created_at.asc()).all()
        return jsonify({'status': True, 'users': [item.to_dict() for item in requests_]}), 200

    @app.route('/user/request/approved/<int:user_id>', methods=['PATCH'])
    @role_required(*MANAGERS)
    def approve_request(user_id):
        professional_request = _pending_request_for(user_id)
        if not professional_request:
            return error_response('Solicitação não encontrada.', 404)
        if not _can_review(professional_request):
            return error_response('Acesso negado.', 403)

        user = professional_request.professional
        try:
            professional_request.approved = True
            user.role = professional_request.role
            user.status = USER_ACTIVE
            notify_account_reviewed(user, approved=True)
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'aprovar conta')

        logger.info(f"Conta {user.id} aprovada como papel {user.role} por {current_user.id}")
        return jsonify({'status': True, 'message': 'Conta aprovada com sucesso.'}), 200

    @app.route('/user/request/<int:user_id>', methods=['DELETE'])
    @role_required(*MANAGERS)
    def reject_request(user_id):
        professional_request = _pending_request_for(user_id)
        if not professional_request:
            return error_response('Solicitação não encontrada.', 404)
        if not _can_review(professional_request):
            return error_response('Acesso negado.', 403)

        user = professional_request.professional
        diploma = professional_request.diploma
        try:
            db.session.delete(professional_request)
            user.status = USER_ACTIVE
            notify_account_reviewed(user, approved=False)
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'remover requisição')

        remove_upload(diploma)
        logger.info(f"Solicitação do usuário {user.id} recusada por {current_user.id}")
        return jsonify({'status': True, 'message': 'Requisição recusada com sucesso.'}), 200

    @app.route('/user/teachers', methods=['GET'])
    @role_required(*MANAGERS)
    def list_teachers():
        query = User.query.filter(User.role == ROLE_TEACHER)
        if current_user.role == ROLE_COORDINATOR:
            query = query.filter(User.course_id == current_user.course_id)
        teachers = query.order_by(User.username.asc()).all()
        return jsonify({'status': True, 'teachers': [teacher.to_dict() for teacher in teachers]}), 200

    @app.route('/user/teacher/<int:user_id>', methods=['DELETE'])
    @role_required(*MANAGERS)
    def delete_teacher(user_id):
        teacher = db.session.get(User, user_id)
        if not teacher or teacher.role != ROLE_TEACHER:
            return error_response('Professor não existe', 404)
        if not in_coordinator_scope(current_user, teacher):
            return error_response('Professor pertence a outro curso.', 403)

        try:
            ProfessionalRequest.query.filter_by(professional_id=teacher.id).delete()
            teacher.role = ROLE_STUDENT
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'remover professor')

        return jsonify({'status': True, 'message': 'Professor removido com sucesso'}), 200

    @app.route('/user/coordinator/kpi', methods=['GET'])
    @role_required(*MANAGERS)
    def coordinator_kpis():
        teachers = User.query.filter(User.role == ROLE_TEACHER)
        subjects = Subject.query
        pending = ProfessionalRequest.query.filter_by(approved=False)

        if current_user.role == ROLE_COORDINATOR:
            teachers = teachers.filter(User.course_id == current_user.course_id)
            subjects = subjects.filter(Subject.course_id == current_user.course_id)
            pending = pending.join(User, ProfessionalRequest.professional_id == User.id)\
                .filter(User.course_id == current_user.course_id)

        return jsonify({'status': True, 'kpi': {
            'teachers': teachers.count(),
            'subjects': subjects.count(),
            'requests': pending.count()
        }}), 200

    # -----------------------------------------------------------------------
    # Cursos
    # -----------------------------------------------------------------------
    @app.route('/courses', methods=['GET'])
    def list_courses():
        courses = Course.query.order_by(Course.name.asc()).all()
        return jsonify({'status': True, 'courses': [course.to_dict() for course in courses]}), 200

    @app.route('/courses/<int:course_id>/professors', methods=['GET'])
    @jwt_required()
    def course_professors(course_id):
        db.get_or_404(Course, course_id)
        teachers = User.query.filter_by(role=ROLE_TEACHER, course_id=course_id)\
            .order_by(User.username.asc()).all()
        return jsonify({'status': True, 'professors': [student_summary(t) for t in teachers]}), 200

    @app.route('/courses/<int:course_id>/subjects', methods=['GET'])
    @jwt_required()
    def course_subjects(course_id):
        db.get_or_404(Course, course_id)
        subjects = Subject.query.filter_by(course_id=course_id).order_by(Subject.name.asc()).all()
        return jsonify({'status': True, 'data': {'subjects': [s.to_dict() for s in subjects]}}), 200

    # -----------------------------------------------------------------------
    # Disciplinas
    # -----------------------------------------------------------------------
    @app.route('/subjects', methods=['GET'])
    @jwt_required()
    def list_subjects():
        query = Subject.query
        if current_user.role == ROLE_COORDINATOR:
            query = query.filter(Subject.course_id == current_user.course_id)

        term = search_term()
        if term:
            query = query.filter(Subject.name.ilike(term))

        return paginated_response(query.order_by(Subject.name.asc()), 'subjects')

    def _resolve_teacher(professional_id):
        if not is_positive_int(professional_id):
            return None
        teacher = db.session.get(User, int(professional_id))
        return teacher if teacher and teacher.role == ROLE_TEACHER else None

    @app.route('/subjects', methods=['POST'])
    @role_required(*MANAGERS)
    def create_subject():
        data = json_body()
        name = text_field(data, 'name')
        course_id = data.get('course_id') or data.get('course_valid_id') or current_user.course_id

        if not name or not data.get('professional_id') or not course_id:
            return error_response('Todos os campos são obrigatórios', 400)
        if not isinstance(name, str):
            return error_response('Nome da disciplina inválido.', 422)

        teacher = _resolve_teacher(data.get('professional_id'))
        if not teacher:
            return error_response('Professor inválido.', 422)

        course = db.session.get(Course, int(course_id)) if is_positive_int(course_id) else None
        if not course:
            return error_response('Curso não encontrado.', 404)
        if current_user.role == ROLE_COORDINATOR and course.id != current_user.course_id:
            return error_response('Você só pode criar disciplinas no seu curso.', 403)

        try:
            subject = Subject(
                name=name,
                description=data.get('description'),
                professional_id=teacher.id,
                course_id=course.id
            )
            db.session.add(subject)
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'criar disciplina')

        logger.info(f"Disciplina {subject.id} criada por {current_user.id}")
        return jsonify({'status': True, 'message': 'Disciplina criada com sucesso', 'data': subject.to_dict()}), 201

    @app.route('/subjects/<int:subject_id>', methods=['GET'])
    @jwt_required()
    def get_subject(subject_id):
        subject = db.get_or_404(Subject, subject_id)
        data = subject.to_dict()
        data['classes'] = [class_obj.to_dict() for class_obj in subject.classes]
        return jsonify({'status': True, 'data': data}), 200

    @app.route('/subjects/<int:subject_id>', methods=['PUT'])
    @role_required(*MANAGERS)
    def update_subject(subject_id):
        subject = db.get_or_404(Subject, subject_id)
        if not can_manage_subject(current_user, subject):
            return error_response('Acesso negado.', 403)

        data = json_body()
        if 'name' in data:
            name = text_field(data, 'name')
            if not name or not isinstance(name, str):
                return error_response('Nome da disciplina obrigatório.', 422)
            subject.name = name
        if 'description' in data:
            subject.description = data['description']
        if 'professional_id' in data:
            teacher = _resolve_teacher(data['professional_id'])
            if not teacher:
                return error_response('Professor inválido.', 422)
            subject.professional_id = teacher.id

        try:
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'atualizar disciplina')

        return jsonify({'status': True, 'message': 'Disciplina atualizada com sucesso', 'data': subject.to_dict()}), 200

    @app.route('/subjects/<int:subject_id>', methods=['DELETE'])
    @role_required(*MANAGERS)
    def delete_subject(subject_id):
        subject = db.get_or_404(Subject, subject_id)
        if not can_manage_subject(current_user, subject):
            return error_response('Acesso negado.', 403)

        archives = [material.archive for material in subject.materials]
        try:
            db.session.delete(subject)
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'excluir disciplina')

        for archive in archives:
            remove_upload(archive)
        return jsonify({'status': True, 'message': 'Disciplina excluída com sucesso.'}), 200

    @app.route('/subjects/teacher/<int:teacher_id>', methods=['GET'])
    @jwt_required()
    def subjects_by_teacher(teacher_id):
        subjects = Subject.query.filter_by(professional_id=teacher_id).order_by(Subject.name.asc()).all()
        return jsonify({'status': True, 'subjects': [subject.to_dict() for subject in subjects]}), 200

    # -----------------------------------------------------------------------
    # Turmas, convites e matrículas
    # -----------------------------------------------------------------------
    @app.route('/classes', methods=['POST'])
    @role_required(*STAFF)
    def create_class():
        data = json_body()
        name = text_field(data, 'name')
        period = text_field(data, 'period')

        if not name or not period or not data.get('subject_id') or not data.get('capacity'):
            return error_response(
                'Todos os campos (nome, período, id da disciplina, capacidade) são obrigatórios.', 400
            )
        if not isinstance(name, str) or not isinstance(period, str):
            return error_response('Nome e período devem ser texto.', 422)
        if not is_positive_int(data['capacity']):
            return error_response('Capacidade inválida.', 422)
        if not is_positive_int(data['subject_id']):
            return error_response('ID da disciplina inválido.', 422)

        subject = db.session.get(Subject, int(data['subject_id']))
        if not subject:
            return error_response('Disciplina não encontrada.', 404)
        if not can_manage_subject(current_user, subject):
            return error_response('Acesso negado.', 403)

        try:
            class_obj = Class(
                name=name,
                period=period,
                capacity=int(data['capacity']),
                subject_id=subject.id,
                course_id=subject.course_id,
                expired=parse_datetime(data.get('expired'))
            )
            db.session.add(class_obj)
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'criar turma')

        logger.info(f"Turma {class_obj.id} criada na disciplina {subject.id}")
        return jsonify({'status': True, 'message': 'Turma criada com sucesso!', 'data': class_obj.to_dict()}), 201

    @app.route('/classes/subject/<int:subject_id>', methods=['GET'])
    @jwt_required()
    def classes_by_subject(subject_id):
        db.get_or_404(Subject, subject_id)
        classes = Class.query.filter_by(subject_id=subject_id).order_by(Class.name.asc()).all()
        return jsonify({'status': True, 'data': [class_obj.to_dict() for class_obj in classes]}), 200

    @app.route('/classes/detail/<int:class_id>', methods=['GET'])
    @jwt_required()
    def class_details(class_id):
        class_obj = db.get_or_404(Class, class_id)
        data = class_obj.to_dict()
        data['students'] = [student_summary(e.student) for e in class_obj.enrollments if e.student]
        return jsonify({'status': True, 'data': data}), 200

    @app.route('/classes/students/<int:class_id>', methods=['GET'])
    @role_required(*STAFF)
    def class_students(class_id):
        class_obj = db.get_or_404(Class, class_id)
        if not can_manage_class(current_user, class_obj):
            return error_response('Acesso negado.', 403)
        students = sorted(
            (student_summary(e.student) for e in class_obj.enrollments if e.student),
            key=lambda item: item['username'].lower()
        )
        return jsonify({'status': True, 'students': students}), 200

    @app.route('/classes/<int:class_id>/students/<int:student_id>', methods=['DELETE'])
    @role_required(*STAFF)
    def remove_student_from_class(class_id, student_id):
        class_obj = db.get_or_404(Class, class_id)
        if not can_manage_class(current_user, class_obj):
            return error_response('Acesso negado.', 403)

        enrollment = db.session.get(ClassStudent, (class_id, student_id))
        if not enrollment:
            return error_response('Associação entre aluno e turma não encontrada.', 404)

        try:
            db.session.delete(enrollment)
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'remover aluno da turma')

        return jsonify({'status': True, 'message': 'Aluno removido da turma com sucesso.'}), 200

    @app.route('/classes/<int:class_id>/invites', methods=['POST'])
    @role_required(*STAFF)
    def generate_invite(class_id):
        class_obj = db.get_or_404(Class, class_id)
        if not can_manage_class(current_user, class_obj):
            return error_response('Acesso negado.', 403)

        data = json_body()
        days = data.get('expires_in_days', current_app.config['INVITE_DEFAULT_DAYS'])
        max_uses = data.get('max_uses')

        if not is_positive_int(days):
            return error_response('Validade do convite inválida.', 422)
        if max_uses not in (None, '') and not is_positive_int(max_uses):
            return error_response('Limite de usos inválido.', 422)

        try:
            invite = ClassInvite(
                code=generate_invite_code(),
                class_id=class_obj.id,
                expires_at=datetime.utcnow() + timedelta(days=int(days)),
                max_uses=int(max_uses) if max_uses not in (None, '') else None,
                use_count=0
            )
            db.session.add(invite)
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'criar convite')

        logger.info(f"Convite {invite.code} gerado para a turma {class_obj.id}")
        return jsonify({'status': True, 'message': 'Convite gerado com sucesso.', 'invite': invite.to_dict()}), 201

    @app.route('/classes/student', methods=['GET'])
    @role_required(ROLE_STUDENT)
    def student_classes():
        class_ids = student_class_ids(current_user.id)
        classes = Class.query.filter(Class.id.in_(class_ids)).order_by(Class.name.asc()).all() if class_ids else []
        return jsonify({'status': True, 'classes': [class_obj.to_dict() for class_obj in classes]}), 200

    @app.route('/enrollments/join-with-code', methods=['POST'])
    @role_required(ROLE_STUDENT)
    def join_with_code():
        data = json_body()
        code = text_field(data, 'code')
        if not code or not isinstance(code, str):
            return error_response('Informe o código de convite.', 422)
        code = code.upper()

        invite = ClassInvite.query.filter_by(code=code).first()
        if not invite or not invite.is_valid():
            return error_response('Código inválido, expirado ou já atingiu o limite de usos.', 404)

        class_obj = invite.class_ref
        if class_obj.expired and class_obj.expired < datetime.utcnow():
            return error_response('Esta turma já foi encerrada.', 422)
        if is_enrolled(current_user.id, class_obj.id):
            return error_response('Você já está matriculado nesta turma.', 409)
        if class_obj.student_count >= class_obj.capacity:
            return error_response('Esta turma já atingiu a capacidade máxima.', 409)

        try:
            db.session.add(ClassStudent(class_id=class_obj.id, student_id=current_user.id))
            invite.use_count = (invite.use_count or 0) + 1
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return error_response('Você já está matriculado nesta turma.', 409)
        except SQLAlchemyError as e:
            return database_error(e, 'matricular aluno')

        logger.info(f"Aluno {current_user.id} matriculado na turma {class_obj.id} via convite")
        return jsonify({
            'status': True,
            'message': f"Matrícula na turma {class_obj.name} realizada com sucesso!",
            'data': {'class_id': class_obj.id, 'class_name': class_obj.name}
        }), 200

    # -----------------------------------------------------------------------
    # Materiais
    # -----------------------------------------------------------------------
    @app.route('/material', methods=['POST'])
    @role_required(*STAFF)
    def register_material():
        data = request.form.to_dict()
        error = validate_material_fields(data)
        if error:
            return error_response(error, 422)

        subject = db.session.get(Subject, int(data['subject_id']))
        if not subject:
            return error_response('Disciplina não encontrada.', 404)
        if not can_manage_subject(current_user, subject):
            return error_response('Acesso negado.', 403)

        class_id = int(data['class_id']) if data.get('class_id') else None
        if class_id:
            class_obj = db.session.get(Class, class_id)
            if not class_obj or class_obj.subject_id != subject.id:
                return error_response('Turma não pertence à disciplina.', 422)

        try:
            archive, size = save_upload(request.files.get('materials'), 'materials')
        except UploadError as e:
            return error_response(str(e), 400)

        try:
            material = Material(
                title=data['title'].strip(),
                description=data.get('description'),
                type=data['type'],
                archive=archive,
                file_type='PDF',
                size=size,
                created_by=current_user.id,
                subject_id=subject.id,
                class_id=class_id,
                origin=MATERIAL_ORIGIN_CLASS if class_id else MATERIAL_ORIGIN_SUBJECT
            )
            db.session.add(material)
            db.session.commit()
        except SQLAlchemyError as e:
            remove_upload(archive)
            return database_error(e, 'cadastrar material')

        return jsonify({
            'status': True,
            'message': 'Material Cadastrado com sucesso',
            'subject_id': subject.id,
            'material': material.to_dict()
        }), 201

    @app.route('/material/<int:material_id>', methods=['DELETE'])
    @role_required(*STAFF)
    def delete_material(material_id):
        material = db.get_or_404(Material, material_id)
        if material.created_by != current_user.id and not can_manage_subject(current_user, material.subject):
            return error_response('Acesso negado.', 403)

        archive = material.archive
        try:
            db.session.delete(material)
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'deletar material')

        remove_upload(archive)
        return jsonify({'status': True, 'message': 'Material deletado com sucesso.'}), 200

    @app.route('/material/class/<int:class_id>', methods=['GET'])
    @jwt_required()
    def class_materials(class_id):
        class_obj = db.get_or_404(Class, class_id)
        materials = Material.query.filter(
            Material.subject_id == class_obj.subject_id,
            db.or_(Material.class_id == class_obj.id, Material.class_id.is_(None))
        ).order_by(Material.created_at.desc()).all()
        return jsonify({'status': True, 'materials': [material.to_dict() for material in materials]}), 200

    @app.route('/material/subject/<int:subject_id>', methods=['GET'])
    @jwt_required()
    def subject_materials(subject_id):
        db.get_or_404(Subject, subject_id)
        materials = Material.query.filter_by(subject_id=subject_id, class_id=None)\
            .order_by(Material.created_at.desc()).all()
        return jsonify({'status': True, 'materials': [material.to_dict() for material in materials]}), 200

    @app.route('/materials/<path:filename>', methods=['GET'])
    def download_material(filename):
        directory = os.path.join(current_app.config['UPLOAD_FOLDER'], 'materials')
        force_download = request.args.get('download') == 'true'
        return send_from_directory(directory, filename, as_attachment=force_download)

    @app.route('/images/<path:filename>', methods=['GET'])
    def serve_image(filename):
        return send_from_directory(os.path.join(current_app.config['UPLOAD_FOLDER'], 'images'), filename)

    @app.route('/diplomas/<path:filename>', methods=['GET'])
    @role_required(*MANAGERS)
    def serve_diploma(filename):
        return send_from_directory(os.path.join(current_app.config['UPLOAD_FOLDER'], 'diplomas'), filename)

    # -----------------------------------------------------------------------
    # Simulados
    # -----------------------------------------------------------------------
    @app.route('/form/publish', methods=['POST'])
    @role_required(ROLE_TEACHER)
    def publish_form():
        data = json_body()

        errors = validate_form_payload(data)
        if errors:
            return error_response('Verifique os campos do simulado.', 422, errors=errors)

        class_obj = db.session.get(Class, int(data['class_id']))
        if not class_obj:
            return error_response('Turma não encontrada.', 404)
        if not can_manage_class(current_user, class_obj):
            return error_response('Você não leciona nesta turma.', 403)

        title = data['title'].strip()
        if Form.query.filter_by(title=title, class_id=class_obj.id).first():
            return error_response('Titulo de formulário já existe.', 422)

        deadline = parse_datetime(data['deadline'])
        try:
            form = Form(
                title=title,
                description=data.get('description'),
                created_by=current_user.id,
                subject_id=class_obj.subject_id,
                class_id=class_obj.id,
                total_duration=int(data.get('total_duration') or 0),
                deadline=deadline,
                status='published' if deadline > datetime.utcnow() else 'finished'
            )
            db.session.add(form)

            for index, question_data in enumerate(data['questions']):
                question = Question(
                    text=question_data['text'].strip(),
                    points=float(question_data.get('points', 0) or 0),
                    type=question_data['type'],
                    order_number=index + 1
                )
                form.questions.append(question)
                for option_data in question_data.get('options') or []:
                    question.options.append(Option(
                        text=option_data['text'].strip(),
                        correct=option_data.get('correct') is True
                    ))

            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'cadastrar formulário')

        logger.info(f"Simulado {form.id} publicado na turma {class_obj.id} com {len(form.questions)} questões")
        return jsonify({
            'status': True,
            'message': 'Formulário cadastrado com sucesso.',
            'form': form.to_dict(include_questions=True, show_correct=True)
        }), 201

    @app.route('/form/class/<int:class_id>', methods=['GET'])
    @jwt_required()
    @smart_update_expired_forms(15)
    def forms_by_class(class_id):
        class_obj = db.get_or_404(Class, class_id)
        manager = can_manage_class(current_user, class_obj)
        if not manager and not is_enrolled(current_user.id, class_obj.id):
            return error_response('Você não está matriculado nesta turma.', 403)

        forms = Form.query.filter_by(class_id=class_id).order_by(Form.updated_at.desc()).all()
        if manager:
            data = [form.to_dict(include_questions=True, show_correct=True) for form in forms]
        else:
            results = {
                r.form_id: r for r in FormResult.query.filter_by(student_id=current_user.id).all()
            }
            data = []
            for form in forms:
                item = form.to_dict()
                result = results.get(form.id)
                item['attempt_status'] = result.status if result else None
                data.append(item)

        return jsonify({'status': True, 'class_name': class_obj.name, 'forms': data}), 200

    @app.route('/form/view/<int:form_id>', methods=['GET'])
    @jwt_required()
    @on_form_access
    def view_form(form_id):
        form = db.get_or_404(Form, form_id)
        manager = can_manage_form(current_user, form)
        if not manager and not is_enrolled(current_user.id, form.class_id):
            return error_response('Você não está matriculado nesta turma.', 403)

        data = form.to_dict(include_questions=True, show_correct=manager)
        if not manager:
            result = FormResult.query.filter_by(form_id=form.id, student_id=current_user.id).first()
            # Simulado cronometrado só mostra as questões depois de iniciado
            if form.total_duration and not result:
                data.pop('questions')
            started_at = result.started_at if result else datetime.utcnow()
            data['attempt'] = result.to_dict() if result else None
            data['time_left_seconds'] = 0 if result and result.status == 'completed' \
                else time_left_seconds(form, started_at)

        return jsonify({'status': True, 'form': data}), 200

    @app.route('/form/<int:form_id>', methods=['DELETE'])
    @role_required(ROLE_TEACHER, ROLE_ADMIN)
    def delete_form(form_id):
        form = db.get_or_404(Form, form_id)
        if current_user.role != ROLE_ADMIN and form.created_by != current_user.id:
            return error_response('Sem permissão para excluir este formulário.', 403)

        try:
            db.session.delete(form)
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'deletar formulário')

        logger.info(f"Simulado {form_id} excluído por {current_user.id}")
        return jsonify({'status': True, 'message': 'Formulário deletado com sucesso.'}), 200

    @app.route('/form/<int:form_id>/start', methods=['POST'])
    @role_required(ROLE_STUDENT)
    @on_form_access
    def start_form(form_id):
        form = db.get_or_404(Form, form_id)
        if not is_enrolled(current_user.id, form.class_id):
            return error_response('Você não está matriculado nesta turma.', 403)

        result = FormResult.query.filter_by(form_id=form.id, student_id=current_user.id).first()
        if result and result.status == 'completed':
            return error_response('Simulado já foi entregue.', 409)

        if not result:
            if form.status != 'published' or form.deadline <= datetime.utcnow():
                return error_response('O prazo deste simulado foi encerrado.', 422)
            try:
                result = FormResult(
                    form_id=form.id,
                    student_id=current_user.id,
                    status='in_progress',
                    started_at=datetime.utcnow()
                )
                db.session.add(result)
                db.session.commit()
            except IntegrityError:
                db.session.rollback()
                result = FormResult.query.filter_by(form_id=form.id, student_id=current_user.id).first()
            except SQLAlchemyError as e:
                return database_error(e, 'iniciar simulado')
            logger.info(f"Aluno {current_user.id} iniciou o simulado {form.id}")

        return jsonify({
            'status': True,
            'attempt': result.to_dict(),
            'form': form.to_dict(include_questions=True),
            'duration_seconds': form.duration_seconds,
            'time_left_seconds': time_left_seconds(form, result.started_at)
        }), 200

    @app.route('/form/student/pending', methods=['GET'])
    @role_required(ROLE_STUDENT)
    @smart_update_expired_forms(15)
    def student_pending_forms():
        forms = pending_forms_for_student(current_user.id)
        data = []
        for form in forms:
            item = form.to_dict()
            item['discipline_name'] = item.pop('subject_name')
            data.append(item)
        return jsonify({'status': True, 'forms': data}), 200

    def _parse_answers(form, raw_answers):
        """Valida a lista enviada pelo aluno e devolve {question_id: resposta}"""
        if not isinstance(raw_answers, list):
            return None, 'Envie as respostas como uma lista.'

        questions = {question.id: question for question in form.questions}
        answers = {}
        for raw in raw_answers:
            if not isinstance(raw, dict) or not is_positive_int(raw.get('question_id')):
                return None, 'Resposta inválida.'
            question = questions.get(int(raw['question_id']))
            if question is None:
                return None, 'Questão não pertence a este simulado.'
            if question.id in answers:
                return None, 'Questão respondida mais de uma vez.'

            if question.type == QUESTION_OPEN:
                open_answer = raw.get('open_answer')
                if open_answer is not None and not isinstance(open_answer, str):
                    return None, 'Resposta aberta inválida.'
                answers[question.id] = {'option_id': None, 'open_answer': (open_answer or '').strip() or None}
                continue

            option_id = raw.get('option_id')
            if option_id is not None:
                if not is_positive_int(option_id) or int(option_id) not in {o.id for o in question.options}:
                    return None, 'Alternativa não pertence à questão.'
                option_id = int(option_id)
            answers[question.id] = {'option_id': option_id, 'open_answer': None}

        return answers, None

    @app.route('/form/answers', methods=['POST'])
    @role_required(ROLE_STUDENT)
    def submit_answers():
        data = json_body()
        if not is_positive_int(data.get('form_id')):
            return error_response('Simulado inválido.', 422)

        form = db.get_or_404(Form, int(data['form_id']))
        if not is_enrolled(current_user.id, form.class_id):
            return error_response('Você não está matriculado nesta turma.', 403)

        result = FormResult.query.filter_by(form_id=form.id, student_id=current_user.id).first()
        if result and result.status == 'completed':
            return error_response('Você já respondeu este simulado.', 409)
        if form.total_duration and not result:
            return error_response('Inicie o simulado antes de enviar as respostas.', 422)

        started_at = result.started_at if result else None
        if not can_submit(form, started_at, current_app.config['FORM_SUBMISSION_GRACE_SECONDS']):
            logger.warning(f"Entrega fora do tempo do aluno {current_user.id} no simulado {form.id}")
            return error_response('Tempo esgotado. O simulado não aceita mais respostas.', 422)

        answers, error = _parse_answers(form, data.get('answers'))
        if error:
            return error_response(error, 422)

        score = score_submission(form.questions, answers)
        now = datetime.utcnow()
        try:
            for question_id, answer in answers.items():
                db.session.add(FormAnswer(
                    user_id=current_user.id,
                    form_id=form.id,
                    question_id=question_id,
                    option_id=answer['option_id'],
                    open_answer=answer['open_answer'],
                    corrected=answer['open_answer'] is None
                ))

            if not result:
                result = FormResult(form_id=form.id, student_id=current_user.id, started_at=now)
                db.session.add(result)
            result.status = 'completed'
            result.submitted_at = now
            result.points = score['points']
            result.max_points = score['max_points']
            result.correct = score['correct']
            result.wrong = score['wrong']
            result.percent_correct = score['percent_correct']
            result.corrected = score['pending_open'] == 0
            db.session.flush()

            notify_result_available(result)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return error_response('Você já respondeu este simulado.', 409)
        except SQLAlchemyError as e:
            return database_error(e, 'salvar respostas')

        logger.info(
            f"Aluno {current_user.id} entregou o simulado {form.id}: "
            f"{score['correct']}/{score['objective_total']} acertos ({score['percent_correct']}%)"
        )
        result_data = result.to_dict()
        result_data['total_questions'] = score['objective_total']
        result_data['pending_open'] = score['pending_open']
        return jsonify({'status': True, 'message': 'Respostas enviadas com sucesso.', 'result': result_data}), 200

    @app.route('/form/result/<int:form_id>', methods=['GET'])
    @role_required(ROLE_STUDENT)
    def student_form_result(form_id):
        form = db.get_or_404(Form, form_id)
        result = FormResult.query.filter_by(
            form_id=form.id, student_id=current_user.id, status='completed'
        ).first()
        if not result:
            return error_response('Você ainda não entregou este simulado.', 404)

        data = result.to_dict()
        data['questions'] = result_breakdown(form, result)
        return jsonify({'status': True, 'result': data}), 200

    @app.route('/form/results/<int:form_id>', methods=['GET'])
    @role_required(*STAFF)
    def form_results(form_id):
        form = db.get_or_404(Form, form_id)
        if not can_manage_form(current_user, form):
            return error_response('Acesso negado.', 403)

        results = FormResult.query.filter_by(form_id=form.id, status='completed').all()
        results.sort(key=lambda r: (r.student.username.lower() if r.student else ''))
        percentages = [float(r.percent_correct or 0) for r in results]

        return jsonify({
            'status': True,
            'form': form.to_dict(),
            'results': [r.to_dict() for r in results],
            'summary': {
                'submissions': len(results),
                'average_percent': round(sum(percentages) / len(percentages), 2) if percentages else 0.0,
                'pending_corrections': sum(1 for r in results if not r.corrected)
            }
        }), 200

    @app.route('/form/correction/<int:class_id>', methods=['GET'])
    @role_required(*STAFF)
    def forms_pending_correction(class_id):
        class_obj = db.get_or_404(Class, class_id)
        if not can_manage_class(current_user, class_obj):
            return error_response('Acesso negado.', 403)

        rows = db.session.query(Form, db.func.count(FormAnswer.id))\
            .join(FormAnswer, FormAnswer.form_id == Form.id)\
            .filter(Form.class_id == class_id,
                    FormAnswer.open_answer.isnot(None),
                    FormAnswer.corrected.is_(False))\
            .group_by(Form.id)\
            .all()

        forms = []
        for form, pending in rows:
            item = form.to_dict()
            item['pending_answers'] = pending
            forms.append(item)
        return jsonify({'status': True, 'forms': forms}), 200

    @app.route('/form/answers/<int:form_id>', methods=['GET'])
    @role_required(*STAFF)
    def form_open_answers(form_id):
        form = db.get_or_404(Form, form_id)
        if not can_manage_form(current_user, form):
            return error_response('Acesso negado.', 403)

        rows = FormAnswer.query.join(Question, FormAnswer.question_id == Question.id)\
            .filter(FormAnswer.form_id == form.id, FormAnswer.open_answer.isnot(None))\
            .order_by(FormAnswer.user_id.asc(), Question.order_number.asc())\
            .all()

        students = {}
        for row in rows:
            entry = students.setdefault(row.user_id, {
                'student_id': row.user_id,
                'username': row.user.username if row.user else None,
                'answers': []
            })
            entry['answers'].append({
                'answer_id': row.id,
                'question_id': row.question_id,
                'question_text': row.question.text,
                'max_points': float(row.question.points or 0),
                'open_answer': row.open_answer,
                'corrected': bool(row.corrected),
                'points_awarded': float(row.points_awarded) if row.points_awarded is not None else None,
                'comments': [comment.to_dict() for comment in row.comments]
            })

        ordered = sorted(students.values(), key=lambda item: (item['username'] or '').lower())
        return jsonify({'status': True, 'form_name': form.title, 'students': ordered}), 200

    @app.route('/form/save/correction', methods=['POST'])
    @role_required(*STAFF)
    def save_correction():
        data = request.get_json(silent=True)
        corrections = data.get('corrections') if isinstance(data, dict) else data
        if not isinstance(corrections, list) or not corrections:
            return error_response('Nenhuma correção enviada.', 422)

        touched = {}
        for item in corrections:
            if not isinstance(item, dict) or not is_positive_int(item.get('answer_id')):
                db.session.rollback()
                return error_response('Correção inválida.', 422)

            answer = db.session.get(FormAnswer, int(item['answer_id']))
            if not answer:
                db.session.rollback()
                return error_response('Resposta não encontrada.', 404)
            if answer.open_answer is None:
                db.session.rollback()
                return error_response('Apenas respostas abertas são corrigidas manualmente.', 422)
            if not can_manage_form(current_user, answer.form):
                db.session.rollback()
                return error_response('Acesso negado.', 403)

            try:
                points = float(item.get('points', 0) or 0)
            except (TypeError, ValueError):
                db.session.rollback()
                return error_response('Pontuação inválida.', 422)
            if points < 0 or points > float(answer.question.points or 0):
                db.session.rollback()
                return error_response('Pontuação fora do valor da questão.', 422)

            answer.points_awarded = points
            answer.corrected = True
            comment = text_field(item, 'comment')
            if comment is not None and not isinstance(comment, str):
                db.session.rollback()
                return error_response('Comentário inválido.', 422)
            if comment:
                db.session.add(AnswerComment(answer_id=answer.id, teacher_id=current_user.id, comment=comment))
            touched[(answer.form_id, answer.user_id)] = answer.form

        try:
            db.session.flush()
            for (form_id, student_id), form in touched.items():
                result = FormResult.query.filter_by(form_id=form_id, student_id=student_id).first()
                if not result:
                    continue
                was_corrected = result.corrected
                answer_rows = FormAnswer.query.filter_by(form_id=form_id, user_id=student_id).all()
                rescore_result(result, form.questions, answer_rows)
                if result.corrected and not was_corrected:
                    notify_correction_done(result)
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'salvar correção')

        logger.info(f"Professor {current_user.id} corrigiu {len(corrections)} respostas abertas")
        return jsonify({'status': True, 'message': 'Correção salva com sucesso.'}), 200

    # -----------------------------------------------------------------------
    # Dashboards
    # -----------------------------------------------------------------------
    @app.route('/dashboard/student', methods=['GET'])
    @role_required(ROLE_STUDENT)
    @smart_update_expired_forms(15)
    def student_dashboard():
        class_ids = student_class_ids(current_user.id)
        classes = Class.query.filter(Class.id.in_(class_ids)).all() if class_ids else []
        pending = pending_forms_for_student(current_user.id)
        report = performance.student_report(current_user.id)
        medals = performance.student_medals(current_user.id)

        return jsonify({'status': True, 'data': {
            'classes': [class_obj.to_dict() for class_obj in classes],
            'pending_count': len(pending),
            'pending_forms': [form.to_dict() for form in pending[:5]],
            'recent_results': performance.recent_results(current_user.id, limit=3),
            'overall_average': report['overall_average'],
            'medals_earned': sum(1 for medal in medals if medal['earned'])
        }}), 200

    @app.route('/dashboard/teacher', methods=['GET'])
    @role_required(ROLE_TEACHER)
    def teacher_dashboard():
        subjects = Subject.query.filter_by(professional_id=current_user.id).all()
        subject_ids = [subject.id for subject in subjects]
        classes = Class.query.filter(Class.subject_id.in_(subject_ids)).all() if subject_ids else []

        pending_corrections = FormAnswer.query.join(Form, FormAnswer.form_id == Form.id)\
            .filter(Form.created_by == current_user.id,
                    FormAnswer.open_answer.isnot(None),
                    FormAnswer.corrected.is_(False))\
            .count()

        return jsonify({'status': True, 'data': {
            'subjects': [subject.to_dict() for subject in subjects],
            'classes': [class_obj.to_dict() for class_obj in classes],
            'total_students': sum(class_obj.student_count for class_obj in classes),
            'forms_count': Form.query.filter_by(created_by=current_user.id).count(),
            'pending_corrections': pending_corrections
        }}), 200

    # -----------------------------------------------------------------------
    # Desempenho e medalhas
    # -----------------------------------------------------------------------
    @app.route('/performance/me', methods=['GET'])
    @role_required(ROLE_STUDENT)
    def student_performance():
        return jsonify({'status': True, 'data': performance.student_report(current_user.id)}), 200

    @app.route('/performance/recent', methods=['GET'])
    @role_required(ROLE_STUDENT)
    def recent_notes():
        notes = performance.recent_results(current_user.id)
        if not notes:
            return error_response('Nenhuma nota recente encontrada.', 404)
        return jsonify({'status': True, 'notes': notes}), 200

    @app.route('/performance/medals', methods=['GET'])
    @role_required(ROLE_STUDENT)
    def student_medals():
        return jsonify({'status': True, 'medals': performance.student_medals(current_user.id)}), 200

    # -----------------------------------------------------------------------
    # Notificações
    # -----------------------------------------------------------------------
    @app.route('/notifications', methods=['GET'])
    @jwt_required()
    def get_notifications():
        query = Notification.query.filter_by(user_id=current_user.id)
        if request.args.get('unread') == 'true':
            query = query.filter_by(is_read=False)
        notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()
        return jsonify({
            'status': True,
            'notifications': [n.to_dict() for n in notifications],
            'unread_count': sum(1 for n in notifications if not n.is_read)
        }), 200

    @app.route('/notifications/<int:notification_id>/read', methods=['PATCH'])
    @jwt_required()
    def mark_notification_read(notification_id):
        notification = Notification.query.filter_by(id=notification_id, user_id=current_user.id).first()
        if not notification:
            return error_response('Notificação não encontrada.', 404)

        try:
            notification.is_read = True
            notification.read_at = datetime.utcnow()
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'marcar notificação como lida')

        return jsonify({'status': True, 'notification': notification.to_dict()}), 200

    @app.route('/notifications/mark-all-read', methods=['PATCH'])
    @jwt_required()
    def mark_all_notifications_read():
        try:
            updated = Notification.query.filter_by(user_id=current_user.id, is_read=False)\
                .update({'is_read': True, 'read_at': datetime.utcnow()})
            db.session.commit()
        except SQLAlchemyError as e:
            return database_error(e, 'marcar notificações como lidas')

        return jsonify({'status': True, 'message': f'{updated} notificações marcadas como lidas'}), 200
