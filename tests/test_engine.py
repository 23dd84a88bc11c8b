import pytest

from nlu_studio.server.engine import NLUEngine, strip_slot_markup
from nlu_studio.server.exceptions import InvalidInputError, PredictionError, TrainingError
from nlu_studio.server.models import EntityDefinition, IntentDefinition, TrainInput


@pytest.fixture
def engine(settings):
    return NLUEngine(settings)


@pytest.fixture
def train_input(train_payload):
    return TrainInput.model_validate(train_payload)


@pytest.fixture
def model(engine, train_input):
    return engine.train("abc.en.0", train_input.intents(), train_input.entities, "en", seed=0)


def test_strip_slot_markup():
    assert strip_slot_markup("fly to [New York](city) on [monday](day)") == "fly to New York on monday"
    assert strip_slot_markup("no markup here") == "no markup here"


def test_model_hash_is_deterministic(engine, train_input):
    first = engine.compute_model_hash(train_input.intents(), train_input.entities, "en")
    second = engine.compute_model_hash(train_input.intents(), train_input.entities, "en")
    assert first == second
    assert len(first) == 64


def test_model_hash_depends_on_inputs(engine, train_input):
    english = engine.compute_model_hash(train_input.intents(), train_input.entities, "en")
    french = engine.compute_model_hash(train_input.intents(), train_input.entities, "fr")
    no_entities = engine.compute_model_hash(train_input.intents(), [], "en")
    assert english != french
    assert english != no_entities


def test_train_reports_increasing_progress(engine, train_input):
    progress = []
    engine.train("abc.en.0", train_input.intents(), train_input.entities, "en", progress_callback=progress.append)
    assert progress == sorted(progress)
    assert progress[0] == 0.0
    assert progress[-1] == 1.0


def test_progress_callback_can_abort_training(engine, train_input):
    class Abort(Exception):
        pass

    def abort(progress):
        if progress >= 0.5:
            raise Abort()

    with pytest.raises(Abort):
        engine.train("abc.en.0", train_input.intents(), train_input.entities, "en", progress_callback=abort)


def test_train_builds_model(model):
    assert model.model_id == "abc.en.0"
    assert model.language_code == "en"
    assert model.data["labels"] == ["book_flight", "greeting"]
    assert model.data["samples"] == 12
    assert model.finished_at >= model.started_at


def test_train_rejects_empty_dataset(engine):
    intents = [IntentDefinition(name="empty", utterances=["   "])]
    with pytest.raises(TrainingError):
        engine.train("abc.en.0", intents, [], "en")


def test_train_rejects_invalid_pattern(engine, train_input):
    entities = [EntityDefinition(name="broken", type="pattern", pattern="([a-z")]
    with pytest.raises(InvalidInputError):
        engine.train("abc.en.0", train_input.intents(), entities, "en")


def test_predict_requires_loaded_model(engine, model):
    with pytest.raises(PredictionError):
        engine.predict("hello", model.model_id)


def test_predict_rejects_empty_sentence(engine, model):
    engine.load_model(model)
    with pytest.raises(InvalidInputError):
        engine.predict("  ", model.model_id)


def test_predict_ranks_intents_and_fills_slots(engine, model):
    engine.load_model(model)
    prediction = engine.predict("book a flight to Paris", model.model_id)

    assert prediction.intent.name == "book_flight"
    assert [intent.name for intent in prediction.intents][0] == "book_flight"
    assert {intent.name for intent in prediction.intents} == {"book_flight", "greeting"}
    assert sum(intent.confidence for intent in prediction.intents) == pytest.approx(1.0, abs=1e-3)

    city = next(entity for entity in prediction.entities if entity.name == "city")
    assert city.value == "Paris"
    assert city.source == "Paris"
    assert (city.start, city.end) == (17, 22)
    assert prediction.slots["destination"].value == "Paris"


def test_list_entities_match_synonyms_case_insensitively(engine, model):
    engine.load_model(model)
    prediction = engine.predict("take me to the CITY OF LIGHT with 2 friends", model.model_id)

    by_name = {entity.name: entity for entity in prediction.entities}
    assert by_name["city"].value == "Paris"
    assert by_name["city"].source == "CITY OF LIGHT"
    assert by_name["number"].value == "2"


def test_single_intent_model_predicts_it_with_full_confidence(engine):
    intents = [IntentDefinition(name="only", utterances=["hello", "hi"])]
    model = engine.train("single.en.0", intents, [], "en")
    engine.load_model(model)

    prediction = engine.predict("anything", model.model_id)
    assert prediction.intent.name == "only"
    assert prediction.intent.confidence == 1.0


def test_load_and_unload_are_reference_counted(engine, model):
    engine.load_model(model)
    engine.load_model(model)

    assert engine.unload_model(model.model_id) is True
    assert engine.is_loaded(model.model_id)
    assert engine.unload_model(model.model_id) is True
    assert not engine.is_loaded(model.model_id)
    assert engine.unload_model(model.model_id) is False
