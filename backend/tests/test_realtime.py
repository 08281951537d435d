from vocab_exam.services.realtime import INSERT, UPDATE, RealtimeHub


def test_publish_reaches_matching_subscribers():
    hub = RealtimeHub()
    exams, answers = [], []
    hub.subscribe("exams", [INSERT], exams.append)
    hub.subscribe("exam_answers", [INSERT], answers.append)

    assert hub.publish("exams", INSERT) == 1
    assert hub.publish("exams", UPDATE) == 0

    assert [(e.table, e.event) for e in exams] == [("exams", INSERT)]
    assert answers == []


def test_unsubscribe_releases_handle():
    hub = RealtimeHub()
    events = []
    subscription = hub.subscribe("exams", [INSERT, UPDATE], events.append)
    assert hub.subscriber_count == 1

    hub.unsubscribe(subscription)
    hub.unsubscribe(subscription)
    hub.publish("exams", INSERT)

    assert events == []
    assert hub.subscriber_count == 0


def test_failing_subscriber_does_not_block_others():
    hub = RealtimeHub()
    events = []

    def broken(change):
        raise RuntimeError("boom")

    hub.subscribe("exams", [INSERT], broken)
    hub.subscribe("exams", [INSERT], events.append)

    assert hub.publish("exams", INSERT) == 2
    assert len(events) == 1


def test_store_announces_exam_writes(store, hub, make_word_set):
    events = []
    hub.subscribe("exams", [INSERT, UPDATE], lambda change: events.append(change.event))
    word_set = make_word_set([("dog", 30)])

    exam = store.create_exam(word_set.id, "Ana", total_words=1)
    store.update_exam(exam.id, total_score=1)
    store.update_exam("missing", total_score=1)

    assert events == [INSERT, UPDATE]
