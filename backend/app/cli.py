"""CLI commands for Chat Clone"""

import sys
import os
import argparse
import asyncio

from app.client.api_client import ApiError, ChatApiClient
from app.client.chat_state import ChatState
from app.models.chat import MessageNotFound
from app.models.config import AppConfig, DatabaseConfig, LLMConfig
from app.services.ai_models import AI_MODELS
from app.services.database import ConnectionManager
from app.services.llm_service import API_KEY_ENV_VARS, create_llm_provider, configured_providers
from app.utils.auth import create_session_token
from app.utils.config_loader import REQUIRED_SECTIONS, get_config
from app.utils.logger import setup_logger

CHAT_HELP = """Commands:
  /new [model]        start a new conversation
  /list               list conversations
  /switch <n>         switch to conversation n from /list
  /title <text>       rename the current conversation
  /edit <n> <text>    edit message n of the current conversation
  /delete [n]         delete conversation n (default: current)
  /retry              re-send anything not yet saved
  /save <path>        export the current conversation to Markdown
  /quit               exit
Anything else is sent as a message."""


def validate_config():
    """Validate configuration files"""
    print("Validating configuration...")

    try:
        config = get_config()
        print(f"✓ Configuration file {config.config_path} loaded successfully")

        for section in REQUIRED_SECTIONS:
            print(f"✓ Section [{section}] present")

        llm = LLMConfig(**config.get_section('llm'))
        if llm.default_model not in AI_MODELS:
            print(f"✗ Default model {llm.default_model} is not a known model")
            return False
        print(f"✓ Default model {llm.default_model}")

        for provider in llm.fallback_order:
            if provider not in API_KEY_ENV_VARS:
                print(f"✗ Unknown provider in fallback_order: {provider}")
                return False
            if llm.fallback_models.get(provider) not in AI_MODELS:
                print(f"✗ No valid fallback model for provider {provider}")
                return False

        for provider in llm.fallback_order:
            if os.getenv(API_KEY_ENV_VARS[provider]):
                print(f"✓ {API_KEY_ENV_VARS[provider]} set")
            else:
                print(f"⚠ {API_KEY_ENV_VARS[provider]} not set ({provider} will be skipped)")

        if DatabaseConfig.from_loader(config).url:
            print("✓ Database URL configured")
        else:
            print("⚠ No database URL (the server will run offline)")

        print("\n✓ Configuration validation passed")
        return True

    except (FileNotFoundError, ValueError) as e:
        print(f"\n✗ Configuration validation failed: {e}")
        return False


async def health_check():
    """Perform health check"""
    print("Performing health check...\n")

    config = get_config()
    setup_logger(log_level=config.get('app.log_level', 'INFO'))

    all_healthy = True

    print("Checking document store...")
    manager = ConnectionManager(DatabaseConfig.from_loader(config))
    try:
        if await manager.connect() is not None:
            print("✓ Document store is reachable")
        else:
            print(f"✗ Document store unavailable: {manager.error}")
            all_healthy = False
    finally:
        await manager.close()

    print("\nChecking LLM providers...")
    providers = configured_providers()
    if not providers:
        print("⚠ No provider API keys set; chat will stream the placeholder reply")
    for name in providers:
        provider = create_llm_provider(name)
        if await provider.health_check():
            print(f"✓ {name} is reachable")
        else:
            print(f"✗ {name} is not reachable")
            all_healthy = False

    if all_healthy:
        print("\n✓ All health checks passed")
        return 0
    else:
        print("\n✗ Some health checks failed")
        return 1


def list_models():
    """Print the model registry"""
    default_model = get_config().get('llm.default_model', 'llama3-8b')
    for model_id, spec in AI_MODELS.items():
        marker = "*" if model_id == default_model else " "
        print(f"{marker} {model_id:<18} {spec.provider:<10} {spec.name:<18} {spec.description}")
    return 0


def serve(host=None, port=None, reload=False):
    """Run the API server"""
    import uvicorn

    app_config = AppConfig(**get_config().get_section('app'))
    uvicorn.run(
        "app.main:app",
        host=host or app_config.host,
        port=port or app_config.port,
        reload=reload
    )
    return 0


def _print_conversations(state: ChatState):
    if not state.conversations:
        print("(no conversations)")
    for i, conversation in enumerate(state.conversations, 1):
        marker = "*" if conversation is state.current else " "
        print(f"{marker} {i}. {conversation.title} [{conversation.sync_state.value}]")


def _print_notice(state: ChatState):
    if state.notice:
        print(f"⚠ {state.notice}")
        state.notice = None


def _pick(state: ChatState, index: str):
    try:
        return state.conversations[int(index) - 1]
    except (ValueError, IndexError):
        print(f"No conversation {index}")
        return None


async def _handle_command(state: ChatState, line: str) -> bool:
    """Run one slash command; False means quit"""
    command, _, rest = line[1:].partition(" ")
    rest = rest.strip()

    if command == "quit":
        return False
    elif command == "new":
        await state.create_conversation(rest or None)
        print(f"Started conversation ({state.current.model})")
    elif command == "list":
        _print_conversations(state)
    elif command == "switch":
        conversation = _pick(state, rest)
        if conversation is not None:
            state.select_conversation(conversation.id)
            for message in conversation.messages:
                print(f"{message.role}: {message.content}")
    elif command == "title":
        if state.current is not None:
            await state.update_conversation_title(state.current.id, rest)
    elif command == "edit":
        index, _, text = rest.partition(" ")
        if state.current is None:
            print("No current conversation")
        else:
            try:
                message = state.current.messages[int(index) - 1]
                await state.edit_message(message.id, text)
            except (ValueError, IndexError, MessageNotFound):
                print(f"No message {index}")
    elif command == "delete":
        conversation = _pick(state, rest) if rest else state.current
        if conversation is not None:
            await state.delete_conversation(conversation.id)
    elif command == "retry":
        synced = await state.retry_pending()
        print(f"Synced {synced} item(s)")
    elif command == "save":
        try:
            path = await state.export_markdown(rest or "conversation.md")
            print(f"✓ Saved to {path}")
        except ValueError as e:
            print(f"✗ {e}")
    else:
        print(CHAT_HELP)
    return True


async def chat(base_url: str, user_id: str, model=None):
    """Interactive chat against a running server"""
    token = os.getenv("CHAT_CLONE_TOKEN") or create_session_token(user_id)
    api = ChatApiClient(base_url, token=token)
    state = ChatState(api, default_model=model or get_config().get('llm.default_model', 'llama3-8b'))

    try:
        await state.load_conversations()
        _print_notice(state)
        print(CHAT_HELP)

        while True:
            try:
                line = (await asyncio.to_thread(input, "> ")).strip()
            except EOFError:
                break
            if not line:
                continue

            if line.startswith("/"):
                if not await _handle_command(state, line):
                    break
            else:
                try:
                    await state.send(line, on_chunk=lambda chunk: print(chunk, end="", flush=True))
                    print()
                except ApiError as e:
                    print(f"\n✗ Completion failed: {e}")
            _print_notice(state)
    finally:
        await api.close()
    return 0


def main():
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(description="Chat Clone CLI")
    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    serve_parser = subparsers.add_parser('serve', help='Run the API server')
    serve_parser.add_argument('--host', help='Bind address (default from config)')
    serve_parser.add_argument('--port', type=int, help='Port (default from config)')
    serve_parser.add_argument('--reload', action='store_true', help='Reload on code changes')

    subparsers.add_parser('validate-config', help='Validate configuration files')
    subparsers.add_parser('health', help='Perform health check')
    subparsers.add_parser('models', help='List available models')

    chat_parser = subparsers.add_parser('chat', help='Chat interactively with a running server')
    chat_parser.add_argument('--url', default='http://localhost:8000', help='Server base URL')
    chat_parser.add_argument('--user', default='cli-user', help='User id for the development session token')
    chat_parser.add_argument('--model', help='Model for new conversations')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    if args.command == 'serve':
        return serve(args.host, args.port, args.reload)

    elif args.command == 'validate-config':
        result = validate_config()
        return 0 if result else 1

    elif args.command == 'health':
        return asyncio.run(health_check())

    elif args.command == 'models':
        return list_models()

    elif args.command == 'chat':
        return asyncio.run(chat(args.url, args.user, args.model))

    else:
        print(f"Unknown command: {args.command}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
