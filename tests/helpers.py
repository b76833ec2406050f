from datetime import datetime, timedelta

PASSWORD = 'secret123'


def build_form_payload(class_id, **overrides):
    payload = {
        'title': 'Simulado 1',
        'description': 'Listas e filas',
        'class_id': class_id,
        'total_duration': 30,
        'deadline': (datetime.utcnow() + timedelta(days=1)).isoformat(),
        'questions': [
            {
                'text': 'Qual estrutura segue a política FIFO?',
                'type': 'multipla_escolha',
                'points': 2,
                'options': [
                    {'text': 'Fila', 'correct': True},
                    {'text': 'Pilha', 'correct': False},
                    {'text': 'Árvore', 'correct': False}
                ]
            },
            {
                'text': 'Uma pilha remove primeiro o elemento mais antigo.',
                'type': 'verdadeiro/falso',
                'points': 1,
                'options': [
                    {'text': 'Verdadeiro', 'correct': False},
                    {'text': 'Falso', 'correct': True}
                ]
            },
            {
                'text': 'Explique a diferença entre lista encadeada e vetor.',
                'type': 'aberta',
                'points': 3,
                'options': []
            }
        ]
    }
    payload.update(overrides)
    return payload


def correct_answers(form):
    """Respostas certas para todas as questões objetivas e texto para as abertas"""
    answers = []
    for question in form['questions']:
        if question['type'] == 'aberta':
            answers.append({'question_id': question['id'], 'open_answer': 'Vetores são contíguos.'})
        else:
            option = next(o for o in question['options'] if o['correct'])
            answers.append({'question_id': question['id'], 'option_id': option['id']})
    return answers
