from flask import Flask, request, jsonify
import logging
from typing import Optional

from .chat import ChatEngine
from .services.calls import CallInitiator, CallRequest, CallStore
from .services.capture import MemoryCapturer
from .services.ingestion import IngestionTrigger
from .services.memories import MemoryStore
from .webhook import WebhookProcessor, to_response
from lib.auth import get_user_id, optional_user_id
from lib.config import get_settings, Settings
from lib.database import create_supabase_client
from lib.error_handler import AppError, ErrorHandler
from lib.openai_client import OpenAIClient
from lib.vapi_client import VapiClient
from lib.vector_store import VectorStore

logger = logging.getLogger(__name__)

class Services:
    """Everything the routes talk to, wired once per app"""

    def __init__(
        self,
        supabase,
        calls: CallStore,
        webhook: WebhookProcessor,
        initiator: CallInitiator,
        memories: MemoryStore,
        chat: ChatEngine,
        vector_store=None,
    ):
        self.supabase = supabase
        self.calls = calls
        self.webhook = webhook
        self.initiator = initiator
        self.memories = memories
        self.chat = chat
        self.vector_store = vector_store

def build_services(settings: Optional[Settings] = None) -> Services:
    settings = settings or get_settings()

    supabase = create_supabase_client(settings)

    logger.info("Initializing OpenAI client...")
    openai_client = OpenAIClient(settings)

    try:
        vector_store = VectorStore(openai_client, settings)
    except Exception as e:
        logger.error(f"Failed to initialize Pinecone: {str(e)}")
        vector_store = None

    calls = CallStore(supabase, settings.calls_table)
    memories = MemoryStore(supabase, settings.memories_table)

    capturer = None
    if settings.memory_extraction_enabled:
        capturer = MemoryCapturer(openai_client, memories)

    ingestion = IngestionTrigger(
        vector_store,
        global_namespace=settings.rag_global_namespace,
        capturer=capturer,
        max_workers=settings.ingestion_workers,
    )
    chat = ChatEngine(
        supabase,
        openai_client,
        vector_store,
        threads_table=settings.threads_table,
        messages_table=settings.messages_table,
        search_limit=settings.rag_search_limit,
    )

    logger.info("All services initialized successfully")
    return Services(
        supabase=supabase,
        calls=calls,
        webhook=WebhookProcessor(calls, ingestion),
        initiator=CallInitiator(calls, VapiClient(settings)),
        memories=memories,
        chat=chat,
        vector_store=vector_store,
    )

def create_app(services: Optional[Services] = None) -> Flask:
    app = Flask(__name__)
    services = services or build_services()
    app.extensions['million_ears'] = services

    def current_user() -> str:
        return get_user_id(services.supabase, request.headers.get('Authorization'))

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        body, status = ErrorHandler.handle_app_error(error)
        return jsonify(body), status

    @app.route('/', methods=['GET'])
    def root():
        """Basic health check"""
        return jsonify({
            'status': 'healthy',
            'vector_store': services.vector_store is not None,
        })

    @app.route('/webhook/vapi', methods=['POST'])
    async def vapi_webhook():
        logger.info("Vapi webhook called")
        result = await services.webhook.process(
            request.headers.get('Content-Type'),
            request.get_data()
        )
        body, status = to_response(result)
        return jsonify(body), status

    @app.route('/calls', methods=['POST'])
    async def make_memory_call():
        data = request.get_json(silent=True) or request.form.to_dict()
        call_request = CallRequest.from_form(data)
        user_id = optional_user_id(services.supabase, request.headers.get('Authorization'))
        record = await services.initiator.initiate(call_request, user_id=user_id)
        return jsonify({
            'success': True,
            'id': record.id,
            'callId': record.vapi_call_id,
        }), 201

    @app.route('/calls', methods=['GET'])
    async def get_all_calls():
        calls = await services.calls.list_all()
        return jsonify([call.to_row() for call in calls])

    @app.route('/memories', methods=['GET'])
    async def get_my_memories():
        return jsonify(await services.memories.get_user_memories(current_user()))

    @app.route('/memories', methods=['POST'])
    async def create_memory():
        user_id = current_user()
        data = request.get_json(silent=True) or {}
        if not data.get('name') or not data.get('phoneNumber'):
            raise AppError("Memory requires name and phoneNumber", status_code=400,
                           user_message="name and phoneNumber are required")
        memory_id = await services.memories.create_memory(
            user_id=user_id,
            name=data['name'],
            phone_number=data['phoneNumber'],
            call_id=data.get('callId'),
            custom_questions=data.get('customQuestions'),
            transcript=data.get('transcript'),
            summary=data.get('summary'),
        )
        return jsonify({'success': True, 'memoryId': memory_id}), 201

    @app.route('/memories/<memory_id>', methods=['PATCH'])
    async def update_memory(memory_id):
        user_id = current_user()
        data = request.get_json(silent=True) or {}
        await services.memories.update_memory(
            memory_id,
            user_id,
            transcript=data.get('transcript'),
            summary=data.get('summary'),
        )
        return jsonify({'success': True, 'memoryId': memory_id})

    @app.route('/chat/threads', methods=['POST'])
    async def create_thread():
        return jsonify(await services.chat.create_thread(current_user())), 201

    @app.route('/chat/threads', methods=['GET'])
    async def list_threads():
        return jsonify(await services.chat.list_threads(current_user()))

    @app.route('/chat/threads/<thread_id>', methods=['GET'])
    async def get_thread(thread_id):
        return jsonify(await services.chat.get_thread(thread_id, current_user()))

    @app.route('/chat/threads/<thread_id>/messages', methods=['GET'])
    async def list_messages(thread_id):
        user_id = current_user()
        num_items = request.args.get('numItems', default=50, type=int)
        cursor = request.args.get('cursor')
        return jsonify(await services.chat.list_messages(thread_id, user_id, num_items, cursor))

    @app.route('/chat/threads/<thread_id>/messages', methods=['POST'])
    async def send_message(thread_id):
        user_id = current_user()
        data = request.get_json(silent=True) or {}
        message = (data.get('message') or '').strip()
        if not message:
            raise AppError("Empty chat message", status_code=400, user_message="message is required")
        return jsonify(await services.chat.send_message(thread_id, user_id, message))

    return app
